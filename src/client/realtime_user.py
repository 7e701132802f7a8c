"""
Live view of the signed-in user's profile.

`RealtimeUserSync` follows the authenticated identity. On every identity
change it fetches the profile, creating it from the identity's email and
display name when none exists yet, then subscribes to changes on that one
profile row. Pushed INSERT and UPDATE events replace the local copy without a
round trip; a pushed DELETE clears it.

States:

    UNAUTHENTICATED -> RESOLVING -> SYNCED
                           |  \\-> FETCH_OR_CREATE -> SYNCED
                           \\-------------------------> ERROR

Failures never propagate to the caller: they leave `user` as None and a
message in `error`, until `refetch()` or the next identity change.
"""
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

import httpx
from pydantic import ValidationError

from client import messages
from client.api_client import ApiError, MalformedResponseError
from core.realtime import ChangeEvent, ChangeFeed, RealtimeError, Subscription
from schemas.auth import AuthUser
from schemas.user import UserResponse

logger = logging.getLogger(__name__)

USERS_TABLE = "users"

Listener = Callable[["RealtimeUserSync"], None]


class SyncState(StrEnum):
    """Where the synchronizer is for the current identity."""

    UNAUTHENTICATED = "unauthenticated"
    RESOLVING = "resolving"
    FETCH_OR_CREATE = "fetch_or_create"
    SYNCED = "synced"
    ERROR = "error"


class UserStore(Protocol):
    """Profile lookups the synchronizer depends on."""

    async def get_user(self, user_id: str) -> UserResponse | None:
        """Fetch a profile, or None if it does not exist."""
        ...

    async def create_from_identity(self, identity: AuthUser) -> UserResponse:
        """Create a profile from identity-provider defaults."""
        ...


class RealtimeUserSync:
    """Keeps `user` in step with the auth identity and its profile row."""

    def __init__(self, store: UserStore, feed: ChangeFeed) -> None:
        self._store = store
        self._feed = feed
        self._identity: AuthUser | None = None
        self._subscription: Subscription | None = None
        self._generation = 0
        self._listeners: list[Listener] = []
        self.state = SyncState.UNAUTHENTICATED
        self.user: UserResponse | None = None
        self.error: str | None = None

    @property
    def identity(self) -> AuthUser | None:
        """The authenticated identity being followed."""
        return self._identity

    @property
    def subscribed(self) -> bool:
        """True while a change subscription is live."""
        return self._subscription is not None

    @property
    def loading(self) -> bool:
        """True while the profile is being fetched or created."""
        return self.state in (SyncState.RESOLVING, SyncState.FETCH_OR_CREATE)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` after every state change. Returns a remover."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def set_identity(self, identity: AuthUser | None) -> None:
        """
        Follow a new authenticated identity, or none.

        Re-sending the identity already being followed (e.g. after a token
        refresh) keeps the current profile and subscription.
        """
        if (
            identity is not None
            and self._identity is not None
            and identity.id == self._identity.id
            and self.state is not SyncState.ERROR
        ):
            self._identity = identity
            return

        self._generation += 1
        await self._teardown()
        self._identity = identity
        self.user = None
        if identity is None:
            self._update(SyncState.UNAUTHENTICATED, user=None, error=None)
            return
        await self._resolve(self._generation)

    async def refetch(self) -> None:
        """Fetch (or create) the profile again for the current identity."""
        if self._identity is None:
            return
        self._generation += 1
        await self._resolve(self._generation)

    async def close(self) -> None:
        """Stop following any identity and drop the subscription."""
        await self.set_identity(None)

    async def _resolve(self, generation: int) -> None:
        identity = self._identity
        if identity is None:
            return
        self._update(SyncState.RESOLVING, user=self.user, error=None)
        try:
            user = await self._store.get_user(identity.id)
            if generation != self._generation:
                return
            if user is None:
                self._update(SyncState.FETCH_OR_CREATE, user=None, error=None)
                user = await self._store.create_from_identity(identity)
                logger.info("user_profile_created user_id=%s", identity.id)
        except (ApiError, MalformedResponseError, httpx.HTTPError, ValidationError) as e:
            if generation != self._generation:
                return
            logger.warning("user_resolve_failed user_id=%s error=%s", identity.id, e)
            if isinstance(e, ApiError):
                message = e.error.message
            elif isinstance(e, ValidationError):
                # The identity lacks a field the profile requires, e.g. an email
                message = messages.PROFILE_CREATE_FAILED
            else:
                message = messages.USER_LOAD_FAILED
            self._update(SyncState.ERROR, user=None, error=message)
            return
        if generation != self._generation:
            return

        self._update(SyncState.SYNCED, user=user, error=None)
        if self._subscription is None:
            await self._subscribe(identity.id, generation)

    async def _subscribe(self, user_id: str, generation: int) -> None:
        try:
            subscription = await self._feed.subscribe(
                USERS_TABLE,
                f"id=eq.{user_id}",
                lambda event: self._on_change(user_id, event),
            )
        except RealtimeError as e:
            logger.warning("user_subscribe_failed user_id=%s error=%s", user_id, e)
            return
        if generation != self._generation or self._subscription is not None:
            # Identity changed (or another resolve subscribed) while joining
            await subscription.unsubscribe()
            return
        self._subscription = subscription
        logger.debug("user_subscribed user_id=%s", user_id)

    async def _teardown(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()
            logger.debug("user_unsubscribed")

    def _on_change(self, user_id: str, event: ChangeEvent) -> None:
        if self._identity is None or self._identity.id != user_id:
            return
        if event.event_type in ("INSERT", "UPDATE"):
            try:
                user = UserResponse.model_validate(event.new)
            except ValidationError as e:
                logger.warning("user_push_malformed user_id=%s error=%s", user_id, e)
                return
            if user.id != user_id:
                return
            self._update(SyncState.SYNCED, user=user, error=None)
        elif event.event_type == "DELETE":
            logger.info("user_profile_deleted user_id=%s", user_id)
            self._update(SyncState.UNAUTHENTICATED, user=None, error=None)

    def _update(self, state: SyncState, *, user: UserResponse | None, error: str | None) -> None:
        self.state = state
        self.user = user
        self.error = error
        for listener in list(self._listeners):
            listener(self)
