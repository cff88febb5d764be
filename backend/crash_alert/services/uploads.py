"""
Crash Alert - Evidence Upload Service

Validates and stores the evidence attachments (video clips, snapshots) that
edge devices send along with a crash event.

Architecture:
    - Protocol defines the interface the ingestion pipeline depends on
    - LocalEvidenceStore: writes files under a local upload directory

Checks are split in two:
    validate(): cheap, no IO (field names, count, media type, declared size)
    save():     streams content to storage, enforcing the real size limit

Files are stored under random names; the original filename is metadata only.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import re
import uuid
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from crash_alert.core.exceptions import PersistenceFailure, UploadRejected
from crash_alert.core.types import EvidenceRef

logger = logging.getLogger(__name__)

EVIDENCE_FIELDS = ("file1", "file2", "file3")
CHUNK_SIZE = 1024 * 1024
_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


@dataclass
class IncomingUpload:
    """One multipart file field as received by the HTTP layer."""
    field_name: str
    filename: str
    content_type: str
    stream: BinaryIO
    declared_size: Optional[int] = None

    @property
    def media_type(self) -> str:
        """Content type without parameters, lower-cased."""
        return self.content_type.split(";", 1)[0].strip().lower()


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class EvidenceUploader(Protocol):
    """Protocol for evidence storage collaborators."""

    @abstractmethod
    def validate(self, uploads: Sequence[IncomingUpload]) -> None:
        """
        Check uploads without touching storage.

        Raises:
            UploadRejected: on an unknown/duplicate field, too many files,
                disallowed media type or declared size over the limit
        """
        ...

    @abstractmethod
    async def save(self, uploads: Sequence[IncomingUpload]) -> List[EvidenceRef]:
        """
        Store all uploads; all-or-nothing.

        Raises:
            UploadRejected: if content violates constraints (nothing is kept)
            PersistenceFailure: if the storage itself fails
        """
        ...

    @abstractmethod
    async def discard(self, refs: Iterable[EvidenceRef]) -> None:
        """Remove stored evidence that will not be referenced by an incident."""
        ...


# =============================================================================
# Local Filesystem Implementation
# =============================================================================

class LocalEvidenceStore:
    """
    Stores evidence files in a local directory.

    Args:
        upload_dir: Target directory (created on first save)
        max_bytes: Per-file size limit
        allowed_types: Accepted media types, e.g. ["video/mp4", "image/jpeg"]
        max_files: Maximum attachments per incident
        field_names: Accepted multipart field names
    """

    def __init__(
        self,
        upload_dir: str,
        max_bytes: int,
        allowed_types: Sequence[str],
        max_files: int = 3,
        field_names: Sequence[str] = EVIDENCE_FIELDS,
    ):
        self._dir = Path(upload_dir)
        self._max_bytes = max_bytes
        self._allowed = {t.lower() for t in allowed_types}
        self._max_files = max_files
        self._fields = tuple(field_names)

    @property
    def upload_dir(self) -> Path:
        return self._dir

    def validate(self, uploads: Sequence[IncomingUpload]) -> None:
        if len(uploads) > self._max_files:
            raise UploadRejected(f"at most {self._max_files} files allowed, got {len(uploads)}")

        seen = set()
        for upload in uploads:
            if upload.field_name not in self._fields:
                raise UploadRejected("unexpected file field", field=upload.field_name)
            if upload.field_name in seen:
                raise UploadRejected("duplicate file field", field=upload.field_name)
            seen.add(upload.field_name)

            if upload.media_type not in self._allowed:
                raise UploadRejected(
                    f"media type '{upload.media_type or 'unknown'}' not allowed",
                    field=upload.field_name,
                )
            if upload.declared_size is not None and upload.declared_size > self._max_bytes:
                raise UploadRejected(
                    f"file exceeds {self._max_bytes} bytes",
                    field=upload.field_name,
                )

    def _target_name(self, upload: IncomingUpload) -> str:
        suffix = Path(upload.filename or "").suffix.lower()
        if not _SAFE_SUFFIX.match(suffix):
            suffix = mimetypes.guess_extension(upload.media_type) or ".bin"
        return f"{upload.field_name}_{uuid.uuid4().hex}{suffix}"

    def _write(self, upload: IncomingUpload) -> EvidenceRef:
        self._dir.mkdir(parents=True, exist_ok=True)
        name = self._target_name(upload)
        target = self._dir / name
        partial = target.with_name(name + ".part")

        size = 0
        try:
            with partial.open("wb") as out:
                while True:
                    chunk = upload.stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise UploadRejected(
                            f"file exceeds {self._max_bytes} bytes",
                            field=upload.field_name,
                        )
                    out.write(chunk)
            if size == 0:
                raise UploadRejected("file is empty", field=upload.field_name)
            partial.replace(target)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        return EvidenceRef(
            field_name=upload.field_name,
            storage_ref=name,
            original_name=upload.filename or name,
            media_type=upload.media_type,
            size_bytes=size,
        )

    async def save(self, uploads: Sequence[IncomingUpload]) -> List[EvidenceRef]:
        self.validate(uploads)
        saved: List[EvidenceRef] = []
        try:
            for upload in uploads:
                saved.append(await asyncio.to_thread(self._write, upload))
        except OSError as e:
            await self.discard(saved)
            raise PersistenceFailure(f"could not store evidence: {e.strerror or e}") from e
        except UploadRejected:
            await self.discard(saved)
            raise

        logger.info(
            "Stored %d evidence file(s), %d bytes total",
            len(saved), sum(ref.size_bytes for ref in saved),
        )
        return saved

    async def discard(self, refs: Iterable[EvidenceRef]) -> None:
        for ref in refs:
            path = self._dir / ref.storage_ref
            try:
                await asyncio.to_thread(path.unlink, True)
            except OSError as e:
                logger.warning("Could not remove evidence %s: %s", ref.storage_ref, e)
