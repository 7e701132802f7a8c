"""
Application-scoped state for one client session.

`AppState` is created once at the root of the UI and passed down explicitly.
It wires the session manager to the realtime user synchronizer, owns the
summary cache, and builds the summary workflows. `start()` resumes an
existing session (if any) and `close()` tears everything down.
"""
import logging
from collections.abc import Callable

import httpx

from client.api_client import create_api_client
from client.mutations import (
    CreateSummaryWorkflow,
    DeleteSummaryWorkflow,
    Navigate,
    UpdateSummaryWorkflow,
)
from client.realtime_user import RealtimeUserSync, SyncState
from client.session import AuthChangeEvent, AuthEvent, AuthSessionManager
from client.summary_cache import SummaryCache
from client.user_api import ApiUserStore
from core.config import Settings, get_settings
from core.gateway import GatewayClient, create_gateway_client
from core.realtime import ChangeFeed, RealtimeFeed, create_realtime_feed
from schemas.auth import AuthSession, AuthUser
from schemas.user import UserResponse

logger = logging.getLogger(__name__)


class AppState:
    """Session, cached server data and the live user profile for one client."""

    def __init__(
        self,
        api_client: httpx.AsyncClient,
        gateway: GatewayClient,
        feed: ChangeFeed,
        settings: Settings | None = None,
        *,
        navigate: Navigate | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.api_client = api_client
        self.gateway = gateway
        self.feed = feed
        self.navigate = navigate
        self.session = AuthSessionManager(api_client, gateway)
        self.summaries = SummaryCache(api_client, settings=self.settings)
        self.user_sync = RealtimeUserSync(ApiUserStore(api_client), feed)
        self._remove_listener: Callable[[], None] | None = None
        self._owns_clients = False

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        navigate: Navigate | None = None,
    ) -> "AppState":
        """Build an AppState with its own HTTP and realtime clients."""
        settings = settings or get_settings()
        state = cls(
            create_api_client(settings),
            create_gateway_client(settings),
            create_realtime_feed(settings),
            settings,
            navigate=navigate,
        )
        state._owns_clients = True
        return state

    @property
    def started(self) -> bool:
        """True between `start()` and `close()`."""
        return self._remove_listener is not None

    @property
    def auth_user(self) -> AuthUser | None:
        """Identity of the current session."""
        return self.session.user

    @property
    def user(self) -> UserResponse | None:
        """Profile of the signed-in user, kept live by the change feed."""
        return self.user_sync.user

    @property
    def loading(self) -> bool:
        """True while the signed-in user's profile is being resolved."""
        return self.user_sync.loading

    async def start(self, session: AuthSession | None = None) -> None:
        """Begin following session changes, resuming `session` if given."""
        if self.started:
            return
        self._remove_listener = self.session.on_change(self._on_auth_change)
        if session is not None:
            await self.session.restore(session)
        logger.debug("app_state_started resumed=%s", session is not None)

    async def close(self) -> None:
        """Stop following the session and release owned clients."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        await self.user_sync.close()
        self.summaries.cache.clear()
        if self._owns_clients:
            if isinstance(self.feed, RealtimeFeed):
                await self.feed.close()
            await self.api_client.aclose()
            await self.gateway.aclose()
        logger.debug("app_state_closed")

    async def refresh_user(self) -> None:
        """Reload the signed-in user's profile."""
        await self.user_sync.refetch()

    def create_workflow(self, *, cleanup_orphans: bool = False) -> CreateSummaryWorkflow:
        """Workflow for the upload form."""
        return CreateSummaryWorkflow(
            self.summaries,
            self.gateway,
            lambda: self.session.access_token,
            navigate=self.navigate,
            bucket=self.settings.storage_bucket,
            cleanup_orphans=cleanup_orphans,
        )

    def update_workflow(self, *, cleanup_orphans: bool = False) -> UpdateSummaryWorkflow:
        """Workflow for the edit form."""
        return UpdateSummaryWorkflow(
            self.summaries,
            self.gateway,
            lambda: self.session.access_token,
            navigate=self.navigate,
            bucket=self.settings.storage_bucket,
            cleanup_orphans=cleanup_orphans,
        )

    def delete_workflow(self) -> DeleteSummaryWorkflow:
        """Workflow for the delete button."""
        return DeleteSummaryWorkflow(self.summaries, navigate=self.navigate)

    async def _on_auth_change(self, change: AuthChangeEvent) -> None:
        if change.event is AuthEvent.SIGNED_OUT or change.session is None:
            await self.feed.set_access_token(None)
            await self.user_sync.set_identity(None)
            # Drop everything read under the signed-out session
            self.summaries.cache.clear()
            return
        await self.feed.set_access_token(change.session.access_token)
        await self.user_sync.set_identity(change.session.user)
        if self.user_sync.state is SyncState.ERROR:
            logger.warning(
                "user_sync_error user_id=%s error=%s",
                change.session.user.id, self.user_sync.error,
            )
