"""In-memory change feed for client-core tests."""
from core.realtime import ChangeEvent, ChangeHandler, RealtimeError


class FakeSubscription:
    """Counts how often it was left."""

    def __init__(self) -> None:
        self.unsubscribed = 0

    async def unsubscribe(self) -> None:
        self.unsubscribed += 1


class FakeFeed:
    """Change feed recording subscriptions and letting tests push events."""

    def __init__(self) -> None:
        self.subscriptions: list[tuple[str, str, ChangeHandler, FakeSubscription]] = []
        self.refuse = False
        self.token: str | None = None

    async def subscribe(
        self,
        table: str,
        filter: str,  # noqa: A002
        handler: ChangeHandler,
    ) -> FakeSubscription:
        if self.refuse:
            raise RealtimeError("join refused")
        subscription = FakeSubscription()
        self.subscriptions.append((table, filter, handler, subscription))
        return subscription

    async def set_access_token(self, token: str | None) -> None:
        self.token = token

    def push(self, event: ChangeEvent) -> None:
        """Deliver `event` to the most recent subscriber."""
        _, _, handler, _ = self.subscriptions[-1]
        handler(event)

    @property
    def live(self) -> int:
        """Subscriptions not yet left."""
        return sum(1 for *_, sub in self.subscriptions if sub.unsubscribed == 0)
