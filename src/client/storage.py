"""Upload and removal of summary files in gateway object storage."""
import logging
import re
from datetime import UTC, datetime
from urllib.parse import unquote, urlparse

from client.file_staging import PendingFile
from core.gateway import GatewayClient, GatewayError

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "summaries"
MAX_STEM_LENGTH = 100

# ASCII-only: non-Latin letters are replaced too, keeping storage keys portable
_UNSAFE_CHARS = re.compile(r"[^\w\-_.\s]", re.ASCII)
_SEPARATOR_RUNS = re.compile(r"[\s_]+", re.ASCII)


def sanitize_filename(filename: str) -> str:
    """
    Make a filename safe for use in a storage key.

    Unsafe characters become underscores, runs of whitespace and underscores
    collapse to one underscore, leading and trailing underscores are trimmed,
    and the stem is cut to 100 characters. The extension is kept as-is.
    """
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""
    else:
        extension = f".{extension}"
    stem = _UNSAFE_CHARS.sub("_", stem)
    stem = _SEPARATOR_RUNS.sub("_", stem)
    stem = stem.strip("_")[:MAX_STEM_LENGTH]
    return stem + extension


def build_storage_path(user_id: str, filename: str, now: datetime | None = None) -> str:
    """Build `<user_id>/<year>/<month>/<timestamp_ms>_<sanitized name>`."""
    now = now or datetime.now(UTC)
    timestamp_ms = int(now.timestamp() * 1000)
    return f"{user_id}/{now.year}/{now.month}/{timestamp_ms}_{sanitize_filename(filename)}"


async def upload_summary_file(
    gateway: GatewayClient,
    file: PendingFile,
    user_id: str,
    access_token: str,
    *,
    bucket: str = DEFAULT_BUCKET,
    now: datetime | None = None,
) -> str | None:
    """
    Store a file under the user's folder and return its public URL.

    Returns:
        The public URL, or None if the upload was rejected or failed.
    """
    path = build_storage_path(user_id, file.name, now)
    try:
        stored = await gateway.upload(
            bucket,
            path,
            file.content,
            access_token,
            content_type=file.content_type,
            cache_control="3600",
            upsert=False,
        )
    except GatewayError as e:
        logger.warning(
            "file_upload_failed name=%s path=%s size=%s type=%s error=%s",
            file.name, path, file.size, file.content_type, e,
        )
        return None
    return gateway.get_public_url(bucket, stored)


def storage_path_from_url(url: str, bucket: str = DEFAULT_BUCKET) -> str | None:
    """Extract the object path following the bucket segment of a file URL."""
    segments = urlparse(url).path.split("/")
    if bucket not in segments:
        return None
    index = segments.index(bucket)
    path = "/".join(segments[index + 1:])
    return unquote(path) or None


async def delete_summary_file(
    gateway: GatewayClient,
    url: str,
    access_token: str,
    *,
    bucket: str = DEFAULT_BUCKET,
) -> bool:
    """
    Remove a stored file by its public URL.

    Returns:
        True if removed, False if the URL is not in the bucket or removal failed.
    """
    path = storage_path_from_url(url, bucket)
    if path is None:
        logger.warning("file_delete_skipped url=%s reason=bucket_not_in_url", url)
        return False
    try:
        await gateway.remove(bucket, [path], access_token)
    except GatewayError as e:
        logger.warning("file_delete_failed path=%s error=%s", path, e)
        return False
    return True
