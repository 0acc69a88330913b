"""
PawLenx Backend — File Ingestion Pipeline
===========================================

What:  Accepts job-application uploads and pet photos, stages them locally
       and replicates them to the remote document host.
How:   Composes FileService (validation + atomic staging) with the
       RemoteDocumentStore (best-effort replication).
Who:   Called by routes/applications.py and routes/user.py.

Per-submission state machine:
    ┌──────────┐    ┌───────────┐    ┌────────┐    ┌───────────────────────────┐
    │ received │───▶│ validated │───▶│ staged │───▶│ remote_replicated         │
    └──────────┘    └───────────┘    └────────┘ ╲  └───────────────────────────┘
         │                │               │       ╲ ┌───────────────────────────┐
         ▼                ▼               ▼        ▶│ remote_replication_failed │
    ValidationError  UnsupportedType  FileStorage   └───────────────────────────┘
                     PayloadTooLarge  Error (500)

    A failed replication never rolls back the local stage and never fails the
    submission. The response reports githubUploaded=false, and a marker in
    <storage_root>/replication_pending/ records what still has to be uploaded
    so reconcile_pending() can finish the job later.
"""

import base64
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles

from pawlenx.exceptions import RemoteStoreError, StaleWriteError, ValidationError
from pawlenx.models.pet import photos_prefix
from pawlenx.schemas.applications import ApplicationSummary, SubmissionData
from pawlenx.services.file_service import (
    DOCUMENT_TYPES,
    IMAGE_TYPES,
    FileService,
    UploadedPart,
    sanitize_name,
    submission_timestamp,
)
from pawlenx.services.store_base import RemoteDocumentStore

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    STAGED = "staged"
    REMOTE_REPLICATED = "remote_replicated"
    REMOTE_REPLICATION_FAILED = "remote_replication_failed"


class IngestionPipeline:
    """
    Application and photo ingestion.

    Error Handling Strategy:
        Validation errors stop the pipeline before the disk is touched.
        Staging errors (FileStorageError) are fatal to the request.
        RemoteStoreError during replication is logged and reported, not raised.
    """

    def __init__(self, files: FileService, store: RemoteDocumentStore):
        self.files = files
        self.store = store

    # ── Job applications ──────────────────────────────────────────────────

    async def submit_application(
        self,
        application: Optional[UploadedPart],
        resume: Optional[UploadedPart] = None,
        applicant_name: Optional[str] = None,
        job_title: Optional[str] = None,
        email: Optional[str] = None,
    ) -> SubmissionData:
        """
        Run one submission through the whole pipeline.

        Returns:
            SubmissionData describing the staged folder and replication outcome.

        Raises:
            ValidationError:      Application PDF missing or empty.
            UnsupportedTypeError: A part is not application/pdf.
            PayloadTooLargeError: A part exceeds max_file_size.
            FileStorageError:     Local staging failed.
        """
        received_at = datetime.now(timezone.utc)
        state = SubmissionState.RECEIVED

        # ── received → validated ──────────────────────────────────────────
        if application is None or (application.size == 0 and not application.filename):
            raise ValidationError(message="No PDF file received", field="application")
        self.files.validate_part(application, DOCUMENT_TYPES)
        if resume is not None:
            self.files.validate_part(resume, DOCUMENT_TYPES)
        state = SubmissionState.VALIDATED

        name = _applicant_slug(applicant_name, application.filename)
        staged_files: Dict[str, bytes] = {f"{name}_Application.pdf": application.content}
        resume_file = None
        if resume is not None:
            resume_file = f"{name}_Resume{self.files.extension_for(resume, DOCUMENT_TYPES)}"
            staged_files[resume_file] = resume.content

        # ── validated → staged ────────────────────────────────────────────
        folder_path = await self.files.stage_folder(
            self.files.applications_dir,
            f"{name}_{submission_timestamp(received_at)}",
            staged_files,
        )
        folder = folder_path.name
        state = SubmissionState.STAGED

        _log_receipt(applicant_name or name, job_title, email, folder, staged_files)

        # ── staged → remote ───────────────────────────────────────────────
        message = f"Application from {applicant_name or name}"
        if job_title:
            message += f" for {job_title}"
        failed = await self._replicate(folder, staged_files, message)
        if failed:
            state = SubmissionState.REMOTE_REPLICATION_FAILED
            await self._mark_pending(folder, failed, message)
        else:
            state = SubmissionState.REMOTE_REPLICATED

        logger.info("Submission %s finished in state %s", folder, state.value)
        return SubmissionData(
            folder=folder,
            application_file=f"{name}_Application.pdf",
            resume_file=resume_file,
            applicant_name=applicant_name or name.replace("_", " "),
            job_title=job_title,
            email=email,
            received_at=received_at,
            github_uploaded=not failed,
            state=state.value,
        )

    def list_applications(self) -> List[ApplicationSummary]:
        """Staged submission folders, newest first."""
        summaries = []
        for entry in self.files.applications_dir.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            summaries.append(
                ApplicationSummary(
                    folder=entry.name,
                    files=sorted(f.name for f in entry.iterdir() if f.is_file()),
                    received_at=datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc),
                )
            )
        summaries.sort(key=lambda s: s.received_at, reverse=True)
        return summaries

    # ── Pet photos ────────────────────────────────────────────────────────

    async def stage_pet_photo(self, collection_key: str, part: UploadedPart) -> str:
        """
        Validate, stage and replicate one pet photo.

        Returns:
            The remote path (users/<key>/photos/<file>) when replication
            succeeded, otherwise a data: URI so the pet record still
            carries the picture.
        """
        self.files.validate_part(part, IMAGE_TYPES)
        ext = self.files.extension_for(part, IMAGE_TYPES)
        stem = sanitize_name(Path(part.filename or "").stem, fallback="photo")
        local_path = await self.files.stage_file(
            self.files.pets_dir / collection_key,
            f"{submission_timestamp()}_{stem}{ext}",
            part.content,
        )

        remote_path = f"{photos_prefix(collection_key)}/{local_path.name}"
        try:
            await self.store.upload(remote_path, part.content, f"Upload pet photo for {collection_key}")
        except StaleWriteError:
            logger.info("Photo %s already replicated", remote_path)
        except RemoteStoreError as e:
            logger.warning(
                "Photo replication failed for %s (%s); storing inline",
                remote_path,
                e.message,
            )
            content_type = (part.content_type or "image/jpeg").split(";")[0].strip()
            encoded = base64.b64encode(part.content).decode("ascii")
            return f"data:{content_type};base64,{encoded}"
        return remote_path

    # ── Replication & reconciliation ──────────────────────────────────────

    async def _replicate(self, folder: str, files: Dict[str, bytes], message: str) -> List[str]:
        """Upload each file; return the names that could not be replicated."""
        failed = []
        for name, content in files.items():
            remote_path = f"applications/{folder}/{name}"
            try:
                await self.store.upload(remote_path, content, message)
            except StaleWriteError:
                logger.info("%s already present on remote host", remote_path)
            except RemoteStoreError as e:
                logger.warning("Replication of %s failed: %s", remote_path, e.message)
                failed.append(name)
        return failed

    async def _mark_pending(self, folder: str, names: List[str], message: str) -> None:
        marker = self.files.pending_dir / f"{folder}.json"
        payload = {
            "folder": folder,
            "files": names,
            "message": message,
            "markedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._write_marker(marker, payload)
        except OSError as e:
            logger.error(
                "Could not record pending replication for %s: %s (files: %s)",
                folder,
                str(e),
                ", ".join(names),
            )

    async def _write_marker(self, marker: Path, payload: Dict) -> None:
        """Temp file in .staging/, then os.replace, so a marker is never half written."""
        temp_path = self.files.staging_dir / f"{marker.stem}.{uuid.uuid4().hex}.marker"
        try:
            async with aiofiles.open(temp_path, "w") as f:
                await f.write(json.dumps(payload, indent=2))
            os.replace(temp_path, marker)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    async def reconcile_pending(self) -> int:
        """
        Retry every replication recorded in replication_pending/.

        Markers whose files are all uploaded (or already on the host) are
        deleted; partially successful markers are rewritten with what is
        left. Files that vanished from the local stage are dropped with a
        warning. A marker that cannot be parsed is renamed to *.invalid and
        the pass continues with the next one.

        Returns:
            Number of files uploaded during this pass.
        """
        uploaded = 0
        for marker in sorted(self.files.pending_dir.glob("*.json")):
            try:
                uploaded += await self._reconcile_marker(marker)
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Pending marker %s is malformed (%s); quarantining", marker.name, str(e))
                self._quarantine(marker)
            except OSError as e:
                logger.error("Pending marker %s skipped: %s", marker.name, str(e))

        if uploaded:
            logger.info("Reconciliation uploaded %d pending file(s)", uploaded)
        return uploaded

    async def _reconcile_marker(self, marker: Path) -> int:
        async with aiofiles.open(marker, "r") as f:
            payload = _parse_marker(await f.read())

        folder = payload["folder"]
        folder_path = self.files.applications_dir / folder
        uploaded = 0
        remaining = []
        for name in payload["files"]:
            local = folder_path / name
            if not local.is_file():
                logger.warning("Pending file %s/%s no longer staged; dropping", folder, name)
                continue
            async with aiofiles.open(local, "rb") as f:
                content = await f.read()
            failed = await self._replicate(folder, {name: content}, payload.get("message", "Replicate application"))
            if failed:
                remaining.append(name)
            else:
                uploaded += 1

        if remaining:
            payload["files"] = remaining
            await self._write_marker(marker, payload)
        else:
            marker.unlink(missing_ok=True)
            logger.info("Submission %s fully replicated", folder)
        return uploaded

    def _quarantine(self, marker: Path) -> None:
        try:
            os.replace(marker, marker.with_suffix(".invalid"))
        except OSError as e:
            logger.error("Could not quarantine %s: %s", marker.name, str(e))


def _parse_marker(text: str) -> Dict:
    """
    Decode a pending marker and check its shape.

    Raises:
        ValueError: Not JSON, not an object, or folder/file names that are
            not plain names inside the staging tree.
    """
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("marker is not a JSON object")
    folder = payload.get("folder")
    files = payload.get("files")
    if not isinstance(folder, str) or not _is_plain_name(folder):
        raise ValueError(f"invalid folder {folder!r}")
    if not isinstance(files, list) or not all(isinstance(n, str) and _is_plain_name(n) for n in files):
        raise ValueError("invalid file list")
    return payload


def _is_plain_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def _applicant_slug(applicant_name: Optional[str], filename: Optional[str]) -> str:
    """
    Folder/file prefix for a submission: the sanitized applicant name, or the
    application filename without its "_Application" suffix.
    """
    if applicant_name and applicant_name.strip():
        return sanitize_name(applicant_name)
    stem = Path(filename or "").stem
    if stem.lower().endswith("_application"):
        stem = stem[: -len("_application")]
    return sanitize_name(stem)


def _log_receipt(
    applicant: str,
    job_title: Optional[str],
    email: Optional[str],
    folder: str,
    files: Dict[str, bytes],
) -> None:
    logger.info(
        "New application received: applicant=%s position=%s email=%s folder=%s files=%s size=%.1fKB",
        applicant,
        job_title or "Not specified",
        email or "Not provided",
        folder,
        ", ".join(files),
        sum(len(c) for c in files.values()) / 1024,
    )
