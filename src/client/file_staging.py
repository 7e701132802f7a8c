"""
Staging of files and links on the summary upload and edit forms.

A `FileStaging` holds what the user has picked but not yet submitted: new
files (validated before any network call), Google Docs links, and on edit the
files already attached to the summary. Drag and drop is modelled as a small
state machine: IDLE -> DRAG_ACTIVE on drag-enter, back on drag-leave, and
FILES_STAGED once at least one file is held.
"""
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import unquote, urlparse

from client import messages
from schemas.validators import is_google_docs_url

logger = logging.getLogger(__name__)

ALLOWED_FILE_TYPES = frozenset({
    "application/pdf",
    "application/msword",  # .doc
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # .docx
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/svg+xml",
    "image/webp",
})

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB


class FileValidationError(ValueError):
    """Raised when a picked file may not be uploaded."""


@dataclass
class PendingFile:
    """A file picked by the user and not yet uploaded."""

    name: str
    content: bytes
    content_type: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    preview_url: str | None = None

    @property
    def size(self) -> int:
        """Size in bytes."""
        return len(self.content)

    @property
    def is_image(self) -> bool:
        """True for image files, which get a local preview."""
        return self.content_type.startswith("image/")


@dataclass(frozen=True)
class ExistingFile:
    """A file or link already attached to a summary."""

    url: str
    name: str

    @classmethod
    def from_url(cls, url: str) -> "ExistingFile":
        """Name the file after the last segment of its URL path."""
        segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
        return cls(url=url, name=unquote(segment) or url)


@dataclass(frozen=True)
class LinkItem:
    """An external document link added on the form."""

    url: str
    title: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def validate_file(file: PendingFile, max_size: int = MAX_FILE_SIZE) -> None:
    """
    Check a picked file against the allowed types and the size limit.

    Raises:
        FileValidationError: With a message naming the offending file.
    """
    if file.content_type not in ALLOWED_FILE_TYPES:
        raise FileValidationError(messages.file_type_not_allowed(file.name, file.content_type))
    if file.size > max_size:
        raise FileValidationError(messages.file_too_large(file.name))


def google_docs_title(url: str) -> str:
    """Derive a display title from the document id in a Google Docs URL."""
    parts = urlparse(url).path.split("/")
    doc_id = parts[parts.index("d") + 1] if "d" in parts[:-1] else ""
    return f"Google Docs - {doc_id[:8]}..." if doc_id else "Google Docs Document"


class PreviewStore:
    """
    Registry of local preview handles for staged images.

    Handles must be revoked when the file is removed or the form is
    submitted, or the previewed bytes stay referenced.
    """

    def __init__(self) -> None:
        self._previews: dict[str, bytes] = {}

    def create(self, file: PendingFile) -> str:
        """Register a preview for `file` and return its handle."""
        handle = f"preview:{uuid.uuid4().hex}"
        self._previews[handle] = file.content
        return handle

    def get(self, handle: str) -> bytes | None:
        """Get the previewed bytes, or None once revoked."""
        return self._previews.get(handle)

    def revoke(self, handle: str | None) -> None:
        """Release a preview. Unknown or None handles are ignored."""
        if handle is not None:
            self._previews.pop(handle, None)

    @property
    def active(self) -> int:
        """Number of previews not yet revoked."""
        return len(self._previews)


class StagingState(StrEnum):
    """Drag-and-drop state of the upload area."""

    IDLE = "idle"
    DRAG_ACTIVE = "drag_active"
    FILES_STAGED = "files_staged"


class FileStaging:
    """Files, links and existing attachments picked on a summary form."""

    def __init__(
        self,
        existing: Iterable[ExistingFile] = (),
        *,
        previews: PreviewStore | None = None,
        max_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.previews = previews or PreviewStore()
        self.max_size = max_size
        self.files: list[PendingFile] = []
        self.links: list[LinkItem] = []
        self.existing: list[ExistingFile] = list(existing)
        self.error: str | None = None
        self._dragging = False

    @property
    def state(self) -> StagingState:
        """Current drag-and-drop state."""
        if self._dragging:
            return StagingState.DRAG_ACTIVE
        if self.files:
            return StagingState.FILES_STAGED
        return StagingState.IDLE

    @property
    def has_content(self) -> bool:
        """True when the form would submit at least one file or link."""
        return bool(self.files or self.links or self.existing)

    def drag_enter(self) -> StagingState:
        """A drag entered (or moved over) the upload area."""
        self._dragging = True
        return self.state

    def drag_leave(self) -> StagingState:
        """A drag left the upload area without dropping."""
        self._dragging = False
        return self.state

    def drop(self, files: Iterable[PendingFile]) -> list[PendingFile]:
        """Files were dropped on the upload area."""
        self._dragging = False
        return self.add_files(files)

    def add_files(self, files: Iterable[PendingFile]) -> list[PendingFile]:
        """
        Validate and stage files, in order.

        Invalid files are skipped; `error` holds the message for the last
        rejected file, or None if every file was accepted.

        Returns:
            The files that were staged.
        """
        self.error = None
        accepted: list[PendingFile] = []
        for file in files:
            try:
                validate_file(file, self.max_size)
            except FileValidationError as e:
                logger.debug("file_rejected name=%s reason=%s", file.name, e)
                self.error = str(e)
                continue
            if file.is_image:
                file.preview_url = self.previews.create(file)
            accepted.append(file)
        self.files.extend(accepted)
        return accepted

    def remove_file(self, file_id: str) -> None:
        """Unstage a file and release its preview."""
        for index, file in enumerate(self.files):
            if file.id == file_id:
                self.previews.revoke(file.preview_url)
                del self.files[index]
                return

    def add_link(self, url: str) -> LinkItem | None:
        """
        Stage a Google Docs, Sheets or Slides link.

        Returns:
            The staged link, or None with `error` set if the URL was rejected.
        """
        self.error = None
        url = url.strip()
        if not url:
            self.error = messages.LINK_REQUIRED
            return None
        if not is_google_docs_url(url):
            self.error = messages.LINK_INVALID
            return None
        link = LinkItem(url=url, title=google_docs_title(url))
        self.links.append(link)
        return link

    def remove_link(self, link_id: str) -> None:
        """Unstage a link."""
        self.links = [link for link in self.links if link.id != link_id]

    def remove_existing(self, url: str) -> None:
        """Detach an existing file from the summary being edited."""
        self.existing = [file for file in self.existing if file.url != url]

    def release_previews(self) -> None:
        """Release the previews of every staged file."""
        for file in self.files:
            self.previews.revoke(file.preview_url)
            file.preview_url = None

    def clear(self) -> None:
        """Release previews and drop everything staged."""
        self.release_previews()
        self.files.clear()
        self.links.clear()
        self.error = None
        self._dragging = False
