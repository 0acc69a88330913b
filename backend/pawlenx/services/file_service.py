"""
PawLenx Backend — Upload Validation & Local Staging
=====================================================

What:  Validates uploaded parts and stages them on local disk atomically.
How:   Parts are checked for presence, declared content type, size and the
       type libmagic detects from their header bytes before anything touches
       the disk. Accepted files are written into a private
       temporary directory under <storage_root>/.staging/ and renamed into
       their final location in one step, so a half-written submission is
       never visible under its final name.
Who:   Used by IngestionPipeline for application PDFs and pet photos.

Directory Structure:
    storage/
    ├── .staging/                         ← in-flight writes (same filesystem)
    ├── applications/
    │   └── Jane_Doe_2026-10-19T12-00-00-000Z/
    │       ├── Jane_Doe_Application.pdf
    │       └── Jane_Doe_Resume.pdf
    ├── pets/
    │   └── janedoe_3f9a.../
    │       └── 2026-10-19T12-00-00-000Z_rex.jpg
    └── replication_pending/
        └── Jane_Doe_2026-10-19T12-00-00-000Z.json

Attack vectors handled:
    - Path traversal: stored names are built from sanitized components only
    - Oversized uploads: parts are read with a byte cap (max_file_size + 1)
    - Disguised files: the sniffed type must also be on the accepted list
    - Overwrites: a taken name gets a numeric suffix, never replaced
"""

import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import aiofiles
import magic

from pawlenx.config import Settings
from pawlenx.exceptions import (
    FileStorageError,
    PayloadTooLargeError,
    UnsupportedTypeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
# Content type → extension used when the client's filename has none
DOCUMENT_TYPES = {
    "application/pdf": ".pdf",
}

IMAGE_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")

# libmagic only needs the file header
SNIFF_BYTES = 2048


@dataclass(frozen=True)
class UploadedPart:
    """One file part of a multipart request, already read into memory."""

    field: str
    filename: str
    content_type: Optional[str]
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def sanitize_name(value: str, fallback: str = "Applicant") -> str:
    """'Jane Doe' → 'Jane_Doe'; 'O'Brien, Pat' → 'O_Brien_Pat'."""
    cleaned = _UNSAFE_CHARS.sub("_", value.strip())
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned).strip("_")
    return cleaned or fallback


def submission_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with ':' and '.' replaced, e.g. 2026-10-19T12-00-00-123Z."""
    moment = moment or datetime.now(timezone.utc)
    return f"{moment:%Y-%m-%dT%H-%M-%S}-{moment.microsecond // 1000:03d}Z"


def sniff_type(content: bytes) -> str:
    """
    MIME type read from the file's leading magic bytes, e.g. "%PDF-" →
    application/pdf, FF D8 FF → image/jpeg.

    Raises:
        FileStorageError: libmagic could not inspect the buffer.
    """
    try:
        return magic.from_buffer(content[:SNIFF_BYTES], mime=True)
    except magic.MagicException as e:
        logger.error("MIME type detection failed: %s", str(e))
        raise FileStorageError(
            message="Could not verify file type. Please try again.",
            context={"error": str(e)},
        ) from e


def _normalize_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


class FileService:
    """
    Validation and atomic staging for uploaded files.

    Lifecycle of a submission:
        1. validate_part() for every part (type, size, non-empty, sniffed type)
        2. stage_folder() writes all parts into .staging/<tmp>/
        3. The temporary directory is renamed to its final name
        4. On any OSError the temporary directory is removed and
           FileStorageError is raised
    """

    def __init__(self, settings: Settings):
        self.max_file_size = settings.max_file_size
        self.storage_root = Path(settings.storage_root).resolve()
        self.staging_dir = self.storage_root / ".staging"
        self.applications_dir = self.storage_root / "applications"
        self.pets_dir = self.storage_root / "pets"
        self.pending_dir = self.storage_root / "replication_pending"

        for directory in (self.staging_dir, self.applications_dir, self.pets_dir, self.pending_dir):
            directory.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_part(self, part: Optional[UploadedPart], allowed: Dict[str, str]) -> UploadedPart:
        """
        Raises:
            ValidationError:      The part is missing or empty.
            UnsupportedTypeError: Declared or detected content type not in `allowed`.
            PayloadTooLargeError: More than max_file_size bytes.
        """
        if part is None:
            raise ValidationError(message="No file received", field=None)

        content_type = _normalize_type(part.content_type)
        if content_type not in allowed:
            raise UnsupportedTypeError(
                content_type=part.content_type,
                allowed=sorted(set(allowed)),
                field=part.field,
            )

        if part.size > self.max_file_size:
            raise PayloadTooLargeError(
                max_size=self.max_file_size,
                actual_size=part.size,
                field=part.field,
            )

        if part.size == 0:
            raise ValidationError(message="Uploaded file is empty", field=part.field)

        detected = sniff_type(part.content)
        if _normalize_type(detected) not in allowed:
            logger.warning(
                "Rejected %s: declared %s but content is %s",
                part.field,
                content_type,
                detected,
            )
            raise UnsupportedTypeError(
                content_type=detected,
                allowed=sorted(set(allowed)),
                field=part.field,
            )

        return part

    def extension_for(self, part: UploadedPart, allowed: Dict[str, str]) -> str:
        """Lowercased extension from the client filename if it is allowed, else from the type."""
        ext = Path(part.filename or "").suffix.lower()
        known = set(allowed.values())
        if ".jpg" in known:
            known.add(".jpeg")
        if ext in known:
            return ext
        content_type = _normalize_type(part.content_type)
        return allowed.get(content_type, "")

    # ── Staging ───────────────────────────────────────────────────────────

    async def stage_folder(self, parent: Path, folder: str, files: Dict[str, bytes]) -> Path:
        """
        Write `files` into parent/<folder>/ atomically.

        Returns:
            Final directory path. Its name is `folder`, or `folder-N` when
            that name was already taken.

        Raises:
            FileStorageError: Any filesystem failure; nothing is left behind.
        """
        temp_dir = self.staging_dir / f"{folder}.{uuid.uuid4().hex}.tmp"
        try:
            temp_dir.mkdir(parents=True)
            for name, content in files.items():
                async with aiofiles.open(temp_dir / name, "wb") as f:
                    await f.write(content)
            final_dir = self._claim(parent, folder, temp_dir)
        except OSError as e:
            logger.error("Failed to stage %s: %s", folder, str(e))
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise FileStorageError(
                message="Failed to save the uploaded files. Please try again.",
                context={"folder": folder, "os_error": str(e)},
            ) from e

        logger.info(
            "Staged %s (%d files, %d bytes)",
            final_dir.relative_to(self.storage_root),
            len(files),
            sum(len(c) for c in files.values()),
        )
        return final_dir

    async def stage_file(self, parent: Path, filename: str, content: bytes) -> Path:
        """Single-file variant of stage_folder(): temp file, then rename."""
        temp_path = self.staging_dir / f"{uuid.uuid4().hex}.tmp"
        try:
            parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(content)
            final_path = self._claim(parent, filename, temp_path)
        except OSError as e:
            logger.error("Failed to stage %s: %s", filename, str(e))
            temp_path.unlink(missing_ok=True)
            raise FileStorageError(
                message="Failed to save the uploaded photo. Please try again.",
                context={"filename": filename, "os_error": str(e)},
            ) from e

        logger.info("Staged %s (%d bytes)", final_path.relative_to(self.storage_root), len(content))
        return final_path

    def _claim(self, parent: Path, name: str, source: Path) -> Path:
        """
        Rename `source` to the first free parent/<name>[-N].

        os.rename onto an existing non-empty directory fails, and the
        existence check keeps files from being replaced.
        """
        stem, suffix = _split_name(name, source.is_dir())
        attempt = 0
        while True:
            candidate = parent / (f"{stem}{suffix}" if attempt == 0 else f"{stem}-{attempt}{suffix}")
            if not candidate.exists():
                try:
                    os.rename(source, candidate)
                    return candidate
                except FileExistsError:
                    pass
                except OSError as e:
                    if not candidate.exists():
                        raise
                    logger.debug("Lost rename race for %s: %s", candidate.name, str(e))
            attempt += 1
            if attempt > 100:
                raise OSError(f"No free name for {name} in {parent}")


def _split_name(name: str, is_dir: bool):
    if is_dir:
        return name, ""
    path = Path(name)
    return path.stem, path.suffix
