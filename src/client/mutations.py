"""
Summary create, edit and delete workflows, plus profile edits.

Each workflow checks its preconditions before touching the network, uploads
new files one at a time in list order, then makes a single call through the
summary cache. Progress is tracked per file name, and every failure ends up
as one user-facing message in `error`; nothing is raised to the caller.

Files stored before a later step fails stay in object storage, unreferenced
by any summary. Pass `cleanup_orphans=True` to remove them on a best-effort
basis instead.
"""
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from client import messages, user_api
from client.api_client import ApiError, MalformedResponseError
from client.file_staging import ExistingFile, FileStaging, PendingFile
from client.storage import DEFAULT_BUCKET, delete_summary_file, upload_summary_file
from client.summary_cache import SummaryCache
from core.gateway import GatewayClient
from schemas.summary import SummaryCreate, SummaryUpdate, SummaryWithUser
from schemas.user import UserResponse, UserUpdate
from schemas.validators import validate_grade

logger = logging.getLogger(__name__)

Navigate = Callable[[str], Any]
Confirm = Callable[[str], bool | Awaitable[bool]]
TokenProvider = Callable[[], str | None]


class UploadFailedError(Exception):
    """Raised when a file could not be stored."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(messages.upload_failed(filename))


@dataclass
class SummaryForm:
    """Text fields of the summary form."""

    name: str = ""
    description: str = ""

    @property
    def trimmed_name(self) -> str:
        """Name without surrounding whitespace."""
        return self.name.strip()

    @property
    def trimmed_description(self) -> str | None:
        """Description without surrounding whitespace, or None when blank."""
        return self.description.strip() or None


def _failure_message(error: Exception, fallback: str) -> str:
    """User-facing message for a failed workflow step."""
    if isinstance(error, UploadFailedError | ApiError):
        return str(error)
    return fallback


class _UploadingWorkflow:
    """Shared upload sequencing and state for the create and edit workflows."""

    def __init__(
        self,
        cache: SummaryCache,
        gateway: GatewayClient,
        access_token: TokenProvider,
        *,
        navigate: Navigate | None = None,
        bucket: str = DEFAULT_BUCKET,
        cleanup_orphans: bool = False,
    ) -> None:
        self.cache = cache
        self.gateway = gateway
        self.access_token = access_token
        self.navigate = navigate
        self.bucket = bucket
        self.cleanup_orphans = cleanup_orphans
        self.error: str | None = None
        self.uploading = False
        self.progress: dict[str, int] = {}

    async def _upload_files(
        self,
        files: list[PendingFile],
        user_id: str,
        uploaded: list[str],
    ) -> None:
        """
        Upload files strictly one after another, appending each URL to `uploaded`.

        Raises:
            UploadFailedError: On the first file that could not be stored.
        """
        token = self.access_token() or ""
        for file in files:
            self.progress[file.name] = 0
            url = await upload_summary_file(
                self.gateway, file, user_id, token, bucket=self.bucket,
            )
            if url is None:
                raise UploadFailedError(file.name)
            uploaded.append(url)
            self.progress[file.name] = 100

    async def _discard(self, uploaded: list[str]) -> None:
        """Remove files stored by a run that then failed, if enabled."""
        if not self.cleanup_orphans or not uploaded:
            return
        token = self.access_token() or ""
        for url in uploaded:
            removed = await delete_summary_file(self.gateway, url, token, bucket=self.bucket)
            if not removed:
                logger.warning("orphan_cleanup_failed url=%s", url)
        logger.info("orphans_cleaned count=%s", len(uploaded))

    def _go(self, path: str) -> None:
        if self.navigate is not None:
            self.navigate(path)


class CreateSummaryWorkflow(_UploadingWorkflow):
    """Turns the upload form into a new summary."""

    async def run(
        self,
        user: UserResponse | None,
        form: SummaryForm,
        staging: FileStaging,
    ) -> SummaryWithUser | None:
        """
        Upload staged files, then create the summary from files and links.

        File URLs are submitted as uploaded files first, in the order they were
        staged, followed by links in the order they were added.

        Returns:
            The created summary, or None with `error` set.
        """
        if user is None:
            self.error = messages.NOT_SIGNED_IN_UPLOAD
            return None
        if not form.trimmed_name:
            self.error = messages.NAME_REQUIRED
            return None
        if not staging.files and not staging.links:
            self.error = messages.CONTENT_REQUIRED
            return None

        self.uploading = True
        self.error = None
        uploaded: list[str] = []
        try:
            await self._upload_files(list(staging.files), user.id, uploaded)
            summary = await self.cache.create(SummaryCreate(
                name=form.trimmed_name,
                description=form.trimmed_description,
                file_urls=[*uploaded, *(link.url for link in staging.links)],
            ))
        except (UploadFailedError, ApiError, MalformedResponseError, httpx.HTTPError) as e:
            logger.warning("summary_create_failed user_id=%s error=%s", user.id, e)
            self.error = _failure_message(e, messages.CREATE_FAILED)
            await self._discard(uploaded)
            return None
        finally:
            self.uploading = False
            self.progress.clear()

        staging.release_previews()
        logger.info("summary_create_succeeded id=%s files=%s", summary.id, len(summary.file_urls))
        self._go(f"/summaries/{summary.id}")
        return summary


class UpdateSummaryWorkflow(_UploadingWorkflow):
    """Applies the edit form to an existing summary."""

    async def run(
        self,
        user: UserResponse | None,
        summary: SummaryWithUser,
        form: SummaryForm,
        staging: FileStaging,
    ) -> SummaryWithUser | None:
        """
        Upload new files, then replace the summary's fields and file list.

        The submitted file list is the kept existing files in their current
        order, then newly uploaded files, then newly added links. A blank
        description clears the stored one.

        Returns:
            The updated summary, or None with `error` set.
        """
        if user is None:
            self.error = messages.NOT_SIGNED_IN_EDIT
            return None
        if user.id != summary.user_id:
            self.error = messages.NO_EDIT_PERMISSION
            return None
        if not form.trimmed_name:
            self.error = messages.NAME_REQUIRED
            return None
        if not staging.has_content:
            self.error = messages.CONTENT_REQUIRED_EDIT
            return None

        self.uploading = True
        self.error = None
        uploaded: list[str] = []
        try:
            await self._upload_files(list(staging.files), user.id, uploaded)
            updated = await self.cache.update(summary.id, SummaryUpdate(
                name=form.trimmed_name,
                description=form.trimmed_description,
                file_urls=[
                    *(existing.url for existing in staging.existing),
                    *uploaded,
                    *(link.url for link in staging.links),
                ],
            ))
        except (UploadFailedError, ApiError, MalformedResponseError, httpx.HTTPError) as e:
            logger.warning("summary_update_failed id=%s error=%s", summary.id, e)
            self.error = _failure_message(e, messages.UPDATE_FAILED)
            await self._discard(uploaded)
            return None
        finally:
            self.uploading = False
            self.progress.clear()

        staging.release_previews()
        logger.info("summary_update_succeeded id=%s", summary.id)
        self._go(f"/summaries/{summary.id}")
        return updated


class DeleteSummaryWorkflow:
    """Deletes a summary after the user confirms."""

    def __init__(
        self,
        cache: SummaryCache,
        *,
        navigate: Navigate | None = None,
        redirect_to: str = "/summaries",
    ) -> None:
        self.cache = cache
        self.navigate = navigate
        self.redirect_to = redirect_to
        self.error: str | None = None
        self.deleting = False

    async def run(
        self,
        summary: SummaryWithUser | None,
        user: UserResponse | None,
        confirm: Confirm,
    ) -> bool:
        """
        Ask for confirmation, then delete.

        Returns:
            True if the summary was deleted.
        """
        if summary is None or user is None:
            return False
        answer = confirm(messages.DELETE_CONFIRMATION)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            return False

        self.deleting = True
        self.error = None
        try:
            deleted = await self.cache.delete(summary.id)
        except (ApiError, MalformedResponseError, httpx.HTTPError) as e:
            logger.warning("summary_delete_failed id=%s error=%s", summary.id, e)
            self.error = _failure_message(e, messages.DELETE_FAILED)
            return False
        finally:
            self.deleting = False

        if not deleted:
            self.error = messages.DELETE_FAILED
            return False
        self._go()
        return True

    def _go(self) -> None:
        if self.navigate is not None:
            self.navigate(self.redirect_to)


@dataclass
class EditFormState:
    """What the edit page needs, or why it cannot be shown."""

    summary: SummaryWithUser | None = None
    form: SummaryForm = field(default_factory=SummaryForm)
    existing_files: list[ExistingFile] = field(default_factory=list)
    error: str | None = None


async def load_summary_for_edit(
    cache: SummaryCache,
    summary_id: str,
    user: UserResponse | None,
) -> EditFormState:
    """Load a summary into edit-form state, refusing summaries the user does not own."""
    try:
        summary = await cache.fetch_detail(summary_id)
    except (ApiError, MalformedResponseError, httpx.HTTPError) as e:
        logger.warning("summary_load_failed id=%s error=%s", summary_id, e)
        return EditFormState(error=_failure_message(e, messages.LOAD_FAILED))
    if summary is None:
        return EditFormState(error=messages.SUMMARY_NOT_FOUND)
    if user is None or user.id != summary.user_id:
        return EditFormState(error=messages.NO_EDIT_PERMISSION)
    return EditFormState(
        summary=summary,
        form=SummaryForm(name=summary.name, description=summary.description or ""),
        existing_files=[ExistingFile.from_url(url) for url in summary.file_urls],
    )


@dataclass
class ProfileUpdateResult:
    """Outcome of a profile edit."""

    user: UserResponse | None = None
    error: str | None = None


async def update_profile(
    client: httpx.AsyncClient,
    user: UserResponse,
    full_name: str,
    grade: str | None,
) -> ProfileUpdateResult:
    """Save a new full name and grade for the signed-in user."""
    if not full_name.strip():
        return ProfileUpdateResult(error=messages.FULL_NAME_REQUIRED)
    if not grade:
        return ProfileUpdateResult(error=messages.GRADE_REQUIRED)
    try:
        validate_grade(grade)
    except ValueError as e:
        return ProfileUpdateResult(error=str(e))
    try:
        updated = await user_api.update_user(
            client, user.id, UserUpdate(full_name=full_name.strip(), grade=grade),
        )
    except (ApiError, MalformedResponseError, httpx.HTTPError) as e:
        logger.warning("profile_update_failed user_id=%s error=%s", user.id, e)
        return ProfileUpdateResult(error=_failure_message(e, messages.PROFILE_UPDATE_FAILED))
    return ProfileUpdateResult(user=updated)
