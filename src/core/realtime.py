"""
Change feed over the gateway's realtime service.

`RealtimeFeed` adapts the `realtime` client from the Supabase libraries to the
small `ChangeFeed` protocol the client core depends on. Each subscription is
its own channel with one `postgres_changes` binding, and `subscribe` returns
only once the server has confirmed the join. Pushed payloads arrive as
`ChangeEvent`s whose `new` and `old` hold the row before and after.
"""
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Protocol

import websockets
from realtime import AsyncRealtimeChannel, AsyncRealtimeClient, RealtimeSubscribeStates

from core.config import Settings

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 10.0


@dataclass
class ChangeEvent:
    """A single row change pushed by the feed."""

    event_type: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "ChangeEvent | None":
        """Build an event from a `postgres_changes` payload. None when it is malformed."""
        if not isinstance(payload, dict):
            return None
        data = payload.get("data", payload)
        if not isinstance(data, dict) or "type" not in data:
            return None
        return cls(
            event_type=str(data["type"]).upper(),
            new=data.get("record") or {},
            old=data.get("old_record") or {},
        )


ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]


class RealtimeError(Exception):
    """Raised when the feed refuses or fails to open a channel."""


class Subscription(Protocol):
    """Handle for a live channel."""

    async def unsubscribe(self) -> None:
        """Leave the channel. Safe to call more than once."""
        ...


class ChangeFeed(Protocol):
    """Anything that can open a filtered change subscription on a table."""

    async def subscribe(
        self,
        table: str,
        filter: str,  # noqa: A002
        handler: ChangeHandler,
    ) -> Subscription:
        """Subscribe `handler` to changes on `table` matching `filter`."""
        ...

    async def set_access_token(self, token: str | None) -> None:
        """Authenticate channels with `token` (the anon key when None)."""
        ...


class FeedSubscription:
    """A joined channel on a `RealtimeFeed`."""

    def __init__(
        self,
        feed: "RealtimeFeed",
        channel: AsyncRealtimeChannel,
        handler: ChangeHandler,
    ) -> None:
        self.channel = channel
        self._feed = feed
        self._handler = handler
        self._closed = False

    @property
    def topic(self) -> str:
        """Channel topic on the socket."""
        return self.channel.topic

    @property
    def closed(self) -> bool:
        """True once the channel has been left."""
        return self._closed

    async def unsubscribe(self) -> None:
        """Leave the channel. Repeated calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        await self._feed._leave(self)

    def _on_change(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        event = ChangeEvent.from_payload(payload)
        if event is None:
            logger.warning("realtime_malformed_change topic=%s", self.topic)
            return
        try:
            result = self._handler(event)
        except Exception:
            logger.exception("realtime_handler_failed topic=%s", self.topic)
            return
        if inspect.isawaitable(result):
            self._feed._track(self.topic, result)


class RealtimeFeed:
    """
    Postgres change subscriptions over an `AsyncRealtimeClient`.

    The socket is connected lazily on the first subscribe. Async handlers are
    scheduled as tasks in receipt order; `close` cancels any still running.
    """

    def __init__(self, socket: AsyncRealtimeClient, *, join_timeout: float = JOIN_TIMEOUT) -> None:
        self._socket = socket
        self._join_timeout = join_timeout
        self._topics = count(1)
        self._subscriptions: set[FeedSubscription] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        return bool(self._socket.is_connected)

    async def set_access_token(self, token: str | None) -> None:
        """Use a new access token for joined channels and channels joined from now on."""
        await self._socket.set_auth(token)

    async def subscribe(
        self,
        table: str,
        filter: str,  # noqa: A002
        handler: ChangeHandler,
        *,
        schema: str = "public",
    ) -> FeedSubscription:
        """
        Join a channel that receives INSERT, UPDATE and DELETE events for rows
        of `table` matching `filter` (e.g. 'id=eq.abc').

        Raises:
            RealtimeError: If the socket cannot connect, or the join is refused
                or not confirmed in time.
        """
        await self._connect()
        channel = self._socket.channel(f"{table}-{next(self._topics)}")
        subscription = FeedSubscription(self, channel, handler)
        channel.on_postgres_changes(
            "*", callback=subscription._on_change, table=table, schema=schema, filter=filter,
        )

        joined: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_status(status: RealtimeSubscribeStates, error: Exception | None) -> None:
            if joined.done():
                if status != RealtimeSubscribeStates.SUBSCRIBED:
                    logger.warning(
                        "realtime_channel_status topic=%s status=%s error=%s",
                        channel.topic, status, error,
                    )
                return
            if status == RealtimeSubscribeStates.SUBSCRIBED:
                joined.set_result(None)
            else:
                joined.set_exception(
                    RealtimeError(f"Channel join refused: {channel.topic} {status} {error or ''}"),
                )

        try:
            await channel.subscribe(on_status)
            async with asyncio.timeout(self._join_timeout):
                await joined
        except RealtimeError:
            await self._discard(channel)
            raise
        except TimeoutError as e:
            await self._discard(channel)
            raise RealtimeError(f"Channel join timed out: {channel.topic}") from e
        except websockets.ConnectionClosed as e:
            await self._discard(channel)
            raise RealtimeError(f"Connection closed while joining {channel.topic}") from e

        self._subscriptions.add(subscription)
        logger.debug("realtime_subscribed topic=%s filter=%s", channel.topic, filter)
        return subscription

    async def close(self) -> None:
        """Leave every channel, cancel running handlers and close the socket."""
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        if self._socket.is_connected:
            await self._socket.close()

    async def _connect(self) -> None:
        if self._socket.is_connected:
            return
        try:
            await self._socket.connect()
        # The client raises a bare Exception once its connection retries run out
        except Exception as e:
            raise RealtimeError(f"Could not connect to realtime feed: {e}") from e
        logger.debug("realtime_connected")

    async def _leave(self, subscription: FeedSubscription) -> None:
        self._subscriptions.discard(subscription)
        await self._discard(subscription.channel)
        logger.debug("realtime_unsubscribed topic=%s", subscription.topic)

    async def _discard(self, channel: AsyncRealtimeChannel) -> None:
        try:
            await self._socket.remove_channel(channel)
        except websockets.ConnectionClosed:
            logger.debug("realtime_leave_on_closed_socket topic=%s", channel.topic)

    def _track(self, topic: str, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._task_done(topic, t))

    def _task_done(self, topic: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "realtime_handler_failed topic=%s error=%s", topic, task.exception(),
            )


def create_realtime_feed(settings: Settings) -> RealtimeFeed:
    """Create a change feed on the gateway's realtime service."""
    return RealtimeFeed(
        AsyncRealtimeClient(settings.realtime_url, settings.gateway_anon_key),
    )
