"""
PawLenx Backend — File Service Unit Tests
===========================================

What:  Upload validation and atomic local staging.
Why:   The upload path is the main security boundary of the service.

Test Strategy:
    ✅ Accepted / rejected content types (declared type, case-insensitive)
    ✅ Sniffed type: disguised payloads rejected whatever their label
    ✅ Size ceiling (boundary at MAX_FILE_SIZE), empty parts
    ✅ Name sanitization and timestamp format
    ✅ Staging: final folder only appears complete; suffix on collision;
       nothing left behind when a write fails
"""

import re
from datetime import datetime, timezone
from unittest.mock import patch

import magic
import pytest

from pawlenx.exceptions import (
    FileStorageError,
    PayloadTooLargeError,
    UnsupportedTypeError,
    ValidationError,
)
from pawlenx.services.file_service import (
    DOCUMENT_TYPES,
    IMAGE_TYPES,
    FileService,
    UploadedPart,
    sanitize_name,
    submission_timestamp,
)

PDF_HEADER = b"%PDF-1.4\n"

JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"

# Smallest headers libmagic recognizes for each accepted image type
IMAGE_HEADERS = {
    "image/png": b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00",
    "image/jpeg": JPEG_HEADER,
    "image/jpg": JPEG_HEADER,
    "image/gif": b"GIF89a\x01\x00\x01\x00\x80\x00\x00\xff\xff\xff\x00\x00\x00;",
    "image/webp": b"RIFF\x24\x00\x00\x00WEBPVP8 \x18\x00\x00\x00" + b"\x00" * 24,
}


def part(content=PDF_HEADER, content_type="application/pdf", filename="cv.pdf", field="application"):
    return UploadedPart(field=field, filename=filename, content_type=content_type, content=content)


class TestFileValidation:
    """Tests for FileService.validate_part()."""

    @pytest.fixture(autouse=True)
    def _service(self, test_settings):
        self.service = FileService(test_settings)

    def test_pdf_accepted(self):
        self.service.validate_part(part(), DOCUMENT_TYPES)

    def test_content_type_parameters_ignored(self):
        self.service.validate_part(part(content_type="Application/PDF; charset=binary"), DOCUMENT_TYPES)

    def test_non_pdf_rejected(self):
        with pytest.raises(UnsupportedTypeError, match="Only PDF files are accepted"):
            self.service.validate_part(part(content_type="image/png", filename="cv.png"), DOCUMENT_TYPES)

    def test_missing_content_type_rejected(self):
        with pytest.raises(UnsupportedTypeError):
            self.service.validate_part(part(content_type=None), DOCUMENT_TYPES)

    def test_pdf_extension_does_not_override_type(self):
        """The declared content type decides, not the filename."""
        with pytest.raises(UnsupportedTypeError):
            self.service.validate_part(part(content_type="text/plain", filename="cv.pdf"), DOCUMENT_TYPES)

    @pytest.mark.parametrize("content_type", sorted(IMAGE_TYPES))
    def test_images_accepted(self, content_type):
        content = IMAGE_HEADERS[content_type]
        self.service.validate_part(part(content=content, content_type=content_type, filename="rex"), IMAGE_TYPES)

    def test_pdf_is_not_an_image(self):
        with pytest.raises(UnsupportedTypeError, match="not supported"):
            self.service.validate_part(part(), IMAGE_TYPES)

    # ── Content Sniffing ──────────────────────────────────────────────────

    def test_text_declared_as_pdf_rejected(self):
        """A renamed text file carries the PDF label but not the PDF header."""
        disguised = part(content=b"Dear hiring manager,\nplease find my CV attached.\n")
        with pytest.raises(UnsupportedTypeError, match="Only PDF files are accepted"):
            self.service.validate_part(disguised, DOCUMENT_TYPES)

    def test_html_declared_as_png_rejected(self):
        disguised = part(
            content=b"<html><body><script>alert(1)</script></body></html>",
            content_type="image/png",
            filename="rex.png",
        )
        with pytest.raises(UnsupportedTypeError, match="not supported"):
            self.service.validate_part(disguised, IMAGE_TYPES)

    def test_pdf_declared_as_jpeg_rejected(self):
        disguised = part(content_type="image/jpeg", filename="rex.jpg")
        with pytest.raises(UnsupportedTypeError):
            self.service.validate_part(disguised, IMAGE_TYPES)

    def test_jpeg_declared_as_png_accepted(self):
        """Mislabelled images are still images."""
        self.service.validate_part(
            part(content=JPEG_HEADER, content_type="image/png", filename="rex.png"), IMAGE_TYPES
        )

    def test_detection_failure_is_a_storage_error(self):
        with patch(
            "pawlenx.services.file_service.magic.from_buffer",
            side_effect=magic.MagicException("cannot read"),
        ):
            with pytest.raises(FileStorageError, match="Could not verify file type"):
                self.service.validate_part(part(), DOCUMENT_TYPES)

    # ── Size Validation ───────────────────────────────────────────────────

    def test_at_limit_accepted(self):
        self.service.validate_part(part(content=PDF_HEADER + b"x" * (self.service.max_file_size - len(PDF_HEADER))), DOCUMENT_TYPES)

    def test_one_byte_over_limit_rejected(self):
        with pytest.raises(PayloadTooLargeError, match="File too large. Max size is 10MB."):
            self.service.validate_part(part(content=b"x" * (10 * 1024 * 1024 + 1)), DOCUMENT_TYPES)

    def test_empty_part_rejected(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate_part(part(content=b""), DOCUMENT_TYPES)

    def test_missing_part_rejected(self):
        with pytest.raises(ValidationError):
            self.service.validate_part(None, DOCUMENT_TYPES)

    # ── Extensions ────────────────────────────────────────────────────────

    def test_extension_from_filename(self):
        assert self.service.extension_for(part(content_type="image/jpeg", filename="Rex.JPEG"), IMAGE_TYPES) == ".jpeg"

    def test_extension_from_type_when_filename_lies(self):
        assert self.service.extension_for(part(content_type="image/png", filename="rex.exe"), IMAGE_TYPES) == ".png"


class TestNaming:
    def test_sanitize_name(self):
        assert sanitize_name("Jane Doe") == "Jane_Doe"
        assert sanitize_name("O'Brien, Pat") == "O_Brien_Pat"
        assert sanitize_name("../../etc/passwd") == "etc_passwd"

    def test_sanitize_name_fallback(self):
        assert sanitize_name("   ") == "Applicant"
        assert sanitize_name("///", fallback="photo") == "photo"

    def test_submission_timestamp_format(self):
        moment = datetime(2026, 10, 19, 12, 0, 5, 123456, tzinfo=timezone.utc)
        assert submission_timestamp(moment) == "2026-10-19T12-00-05-123Z"

    def test_submission_timestamp_defaults_to_now(self):
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z", submission_timestamp())


class TestStaging:
    @pytest.fixture(autouse=True)
    def _service(self, test_settings):
        self.service = FileService(test_settings)

    def test_directories_created(self):
        for directory in ("applications", "pets", "replication_pending", ".staging"):
            assert (self.service.storage_root / directory).is_dir()

    @pytest.mark.asyncio
    async def test_stage_folder_writes_all_files(self):
        folder = await self.service.stage_folder(
            self.service.applications_dir,
            "Jane_Doe_2026-10-19T12-00-00-000Z",
            {"Jane_Doe_Application.pdf": b"app", "Jane_Doe_Resume.pdf": b"cv"},
        )

        assert folder == self.service.applications_dir / "Jane_Doe_2026-10-19T12-00-00-000Z"
        assert (folder / "Jane_Doe_Application.pdf").read_bytes() == b"app"
        assert (folder / "Jane_Doe_Resume.pdf").read_bytes() == b"cv"
        assert list(self.service.staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_taken_folder_gets_suffix(self):
        parent = self.service.applications_dir
        first = await self.service.stage_folder(parent, "Jane", {"a.pdf": b"1"})
        second = await self.service.stage_folder(parent, "Jane", {"a.pdf": b"2"})

        assert first.name == "Jane"
        assert second.name == "Jane-1"
        assert (first / "a.pdf").read_bytes() == b"1"

    @pytest.mark.asyncio
    async def test_failed_write_leaves_nothing_behind(self):
        with patch("pawlenx.services.file_service.aiofiles.open", side_effect=OSError("disk full")):
            with pytest.raises(FileStorageError):
                await self.service.stage_folder(self.service.applications_dir, "Jane", {"a.pdf": b"1"})

        assert list(self.service.applications_dir.iterdir()) == []
        assert list(self.service.staging_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_stage_file_suffixes_before_extension(self):
        parent = self.service.pets_dir / "jane_key"
        first = await self.service.stage_file(parent, "rex.jpg", b"1")
        second = await self.service.stage_file(parent, "rex.jpg", b"2")

        assert first.name == "rex.jpg"
        assert second.name == "rex-1.jpg"
        assert first.read_bytes() == b"1"
