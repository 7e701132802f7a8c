"""Display helpers for the files and links attached to a summary."""
from dataclasses import dataclass
from urllib.parse import quote, unquote, urlparse

from schemas.validators import is_google_docs_url

UNKNOWN_FILENAME = "Unknown file"


@dataclass(frozen=True)
class GoogleDocsInfo:
    """Kind of a Google document."""

    type: str
    docs_type: str


@dataclass(frozen=True)
class FileInfo:
    """How to present one attached file or link."""

    filename: str
    type: str
    url: str
    is_document: bool = False
    is_image: bool = False
    is_pdf: bool = False
    is_google_docs: bool = False
    google_docs_type: str | None = None


# extension -> (description, is_document, is_image)
_EXTENSION_TYPES: dict[str, tuple[str, bool, bool]] = {
    "pdf": ("PDF document", True, False),
    "doc": ("Word document (.doc)", True, False),
    "docx": ("Word document (.docx)", True, False),
    "xls": ("Excel spreadsheet", True, False),
    "xlsx": ("Excel spreadsheet", True, False),
    "ppt": ("PowerPoint presentation", True, False),
    "pptx": ("PowerPoint presentation", True, False),
    "txt": ("Text file", True, False),
    "jpg": ("JPEG image", False, True),
    "jpeg": ("JPEG image", False, True),
    "png": ("PNG image", False, True),
    "gif": ("GIF image", False, True),
    "svg": ("SVG image", False, True),
    "webp": ("WebP image", False, True),
    "bmp": ("BMP image", False, True),
    "ico": ("Icon image", False, True),
}


def get_google_docs_info(url: str) -> GoogleDocsInfo:
    """Tell Docs, Sheets and Slides apart by URL."""
    if "/document/" in url:
        return GoogleDocsInfo("Google Docs", "document")
    if "/spreadsheets/" in url:
        return GoogleDocsInfo("Google Sheets", "spreadsheet")
    if "/presentation/" in url:
        return GoogleDocsInfo("Google Slides", "presentation")
    return GoogleDocsInfo("Google Docs", "unknown")


def get_file_info(url: str) -> FileInfo:
    """Describe an attached file or link for display."""
    if is_google_docs_url(url):
        info = get_google_docs_info(url)
        parts = urlparse(url).path.split("/")
        doc_id = parts[parts.index("d") + 1] if "d" in parts[:-1] else ""
        filename = f"{info.type} - {doc_id[:8]}..." if doc_id else info.type
        return FileInfo(
            filename=filename,
            type=info.type,
            url=url,
            is_document=True,
            is_google_docs=True,
            google_docs_type=info.docs_type,
        )

    filename = unquote(url.rsplit("/", 1)[-1]) or UNKNOWN_FILENAME
    extension = url.rsplit(".", 1)[-1].lower() if "." in url else ""
    description, is_document, is_image = _EXTENSION_TYPES.get(
        extension, ("Unknown", False, False),
    )
    return FileInfo(
        filename=filename,
        type=description,
        url=url,
        is_document=is_document,
        is_image=is_image,
        is_pdf=extension == "pdf",
    )


def get_file_type(filename: str) -> str:
    """Upper-case extension of a filename, or 'FILE' when it has none."""
    _, dot, extension = filename.rpartition(".")
    return extension.upper() if dot and extension else "FILE"


def get_google_docs_embed_url(url: str) -> str:
    """Turn a Google Docs sharing URL into its embeddable preview URL."""
    if not is_google_docs_url(url):
        return url
    if "/edit" in url:
        return url.replace("/edit", "/preview", 1)
    if "/preview" in url:
        return url
    return f"{url}/preview"


def get_online_viewer_urls(document_url: str) -> dict[str, str]:
    """Embeddable viewer URLs for a publicly reachable document."""
    encoded = quote(document_url, safe="")
    return {
        "google_docs": f"https://docs.google.com/gview?url={encoded}&embedded=true",
        "microsoft_office": f"https://view.officeapps.live.com/op/embed.aspx?src={encoded}",
    }
