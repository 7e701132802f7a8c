"""Tests for summary file storage helpers."""
from datetime import UTC, datetime

from client.file_staging import PendingFile
from client.storage import (
    build_storage_path,
    delete_summary_file,
    sanitize_filename,
    storage_path_from_url,
    upload_summary_file,
)
from core.gateway import GatewayClient
from tests.fake_gateway import GATEWAY_URL, FakeGateway

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    def test__sanitize_filename__safe_name_unchanged(self) -> None:
        assert sanitize_filename("notes-v2.pdf") == "notes-v2.pdf"

    def test__sanitize_filename__spaces_and_symbols(self) -> None:
        """Unsafe characters and whitespace runs become single underscores."""
        assert sanitize_filename("my  notes (final)!.pdf") == "my_notes_final.pdf"

    def test__sanitize_filename__non_ascii_replaced(self) -> None:
        """Non-Latin letters are not kept in storage keys."""
        assert sanitize_filename("סיכום.docx") == ".docx"

    def test__sanitize_filename__long_stem_truncated(self) -> None:
        """The stem is cut to 100 characters and the extension kept."""
        assert sanitize_filename("a" * 150 + ".png") == "a" * 100 + ".png"

    def test__sanitize_filename__no_extension(self) -> None:
        assert sanitize_filename("README file") == "README_file"


def test__build_storage_path__user_year_month_timestamp() -> None:
    """Paths are grouped by owner, year and month."""
    path = build_storage_path("u-1", "Notes 1.pdf", NOW)

    assert path == f"u-1/2024/3/{int(NOW.timestamp() * 1000)}_Notes_1.pdf"


def test__storage_path_from_url__after_bucket_segment() -> None:
    url = f"{GATEWAY_URL}/storage/v1/object/public/summaries/u-1/2024/3/1_a%20b.pdf"

    assert storage_path_from_url(url) == "u-1/2024/3/1_a b.pdf"
    assert storage_path_from_url("https://docs.google.com/document/d/abc") is None


class TestUploadSummaryFile:
    """Tests for uploading through the gateway."""

    async def test__upload_summary_file__returns_public_url(
        self, gateway: GatewayClient, fake_gateway: FakeGateway,
    ) -> None:
        """The object lands under the owner's folder and its public URL is returned."""
        user_id, token = fake_gateway.create_account("a@x.com")
        file = PendingFile("notes.pdf", b"%PDF", "application/pdf")

        url = await upload_summary_file(gateway, file, user_id, token, now=NOW)

        path = build_storage_path(user_id, "notes.pdf", NOW)
        assert url == f"{GATEWAY_URL}/storage/v1/object/public/summaries/{path}"
        assert fake_gateway.objects[f"summaries/{path}"] == b"%PDF"

    async def test__upload_summary_file__failure_returns_none(
        self, gateway: GatewayClient, fake_gateway: FakeGateway,
    ) -> None:
        """A rejected upload is reported as None, not raised."""
        user_id, token = fake_gateway.create_account("a@x.com")
        fake_gateway.fail_uploads.add("broken.pdf")
        file = PendingFile("broken.pdf", b"%PDF", "application/pdf")

        assert await upload_summary_file(gateway, file, user_id, token) is None
        assert fake_gateway.objects == {}

    async def test__upload_summary_file__other_users_folder_rejected(
        self, gateway: GatewayClient, fake_gateway: FakeGateway,
    ) -> None:
        """Storage policy only allows writes under the caller's own folder."""
        _, token = fake_gateway.create_account("a@x.com")
        file = PendingFile("notes.pdf", b"%PDF", "application/pdf")

        assert await upload_summary_file(gateway, file, "someone-else", token) is None


class TestDeleteSummaryFile:
    """Tests for removing stored files."""

    async def test__delete_summary_file__removes_object(
        self, gateway: GatewayClient, fake_gateway: FakeGateway,
    ) -> None:
        user_id, token = fake_gateway.create_account("a@x.com")
        file = PendingFile("notes.pdf", b"%PDF", "application/pdf")
        url = await upload_summary_file(gateway, file, user_id, token, now=NOW)

        assert await delete_summary_file(gateway, url, token)
        assert fake_gateway.objects == {}

    async def test__delete_summary_file__foreign_url_skipped(
        self, gateway: GatewayClient,
    ) -> None:
        """URLs outside the bucket are not sent to storage."""
        url = "https://docs.google.com/document/d/abc/edit"

        assert not await delete_summary_file(gateway, url, "token")
