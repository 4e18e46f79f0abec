"""
Archived PDF storage rooted outside any publicly served directory.

Layout: {storage_root}/{issuer_id}/{year}/{sanitized_invoice_number}.pdf

Every operation first proves the target resolves inside the storage root.
Traversal attempts raise PathSecurityError before any file is opened,
created or removed. Archived files are write-once: a path that already
exists is never overwritten.
"""

import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath, PureWindowsPath
from uuid import UUID

from pydantic import BaseModel

from core.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    PathSecurityError,
    StorageError,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_FILENAME_LENGTH = 100


class DocumentInfo(BaseModel):
    """Size and modification time of an archived file."""

    exists: bool
    size: int | None = None
    modified_at: datetime | None = None


def sanitize_filename(invoice_number: str) -> str:
    """Replace anything outside [A-Za-z0-9-_] and cap the length."""
    return _UNSAFE_FILENAME_CHARS.sub("_", invoice_number)[:_MAX_FILENAME_LENGTH]


class DocumentStore:
    """Path-addressed byte storage for finalized invoice PDFs."""

    def __init__(self, storage_root: str | Path):
        root = Path(storage_root).expanduser()
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()
        logger.info(f"Document store rooted at {self.root}")

    @staticmethod
    def build_path(issuer_id: UUID, year: int, invoice_number: str) -> str:
        """Relative archive path for an invoice. Always uses forward slashes."""
        filename = f"{sanitize_filename(invoice_number)}.pdf"
        return f"{issuer_id}/{year}/{filename}"

    def _resolve(self, relative_path: str) -> Path:
        """
        Map a relative path to an absolute one inside the root.

        Lexical checks run first and touch nothing. The symlink check then
        resolves existing path components without opening the target.
        """
        if not relative_path or "\x00" in relative_path:
            raise PathSecurityError("Empty or malformed storage path")

        if (
            PurePosixPath(relative_path).is_absolute()
            or PureWindowsPath(relative_path).is_absolute()
            or PureWindowsPath(relative_path).drive
        ):
            raise PathSecurityError(f"Absolute storage path rejected: {relative_path!r}")

        normalized = os.path.normpath(relative_path.replace("\\", "/"))
        if normalized == "." or normalized == ".." or normalized.startswith("../"):
            raise PathSecurityError(f"Storage path escapes the root: {relative_path!r}")

        resolved = (self.root / normalized).resolve(strict=False)
        if resolved == self.root or not resolved.is_relative_to(self.root):
            raise PathSecurityError(f"Storage path escapes the root: {relative_path!r}")

        return resolved

    def write(self, relative_path: str, data: bytes) -> str:
        """
        Write bytes at a new path, creating parent directories.

        The content is staged in a temporary file and published with an
        exclusive hard link, so readers never see a partial file and an
        existing archive is never replaced.

        Raises:
            PathSecurityError: Path escapes the root
            DocumentExistsError: Path already written
            StorageError: Any other I/O failure
        """
        target = self._resolve(relative_path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directory for {relative_path}: {e}") from e

        staging = None
        try:
            fd, staging = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(staging, 0o444)
            os.link(staging, target)
        except FileExistsError as e:
            raise DocumentExistsError(f"Archive already exists: {relative_path}") from e
        except OSError as e:
            raise StorageError(f"Could not write {relative_path}: {e}") from e
        finally:
            if staging is not None:
                try:
                    os.unlink(staging)
                except FileNotFoundError:
                    pass

        logger.info(f"Archived {len(data)} bytes at {relative_path}")
        return relative_path

    def read(self, relative_path: str) -> bytes:
        """
        Raises:
            PathSecurityError: Path escapes the root
            DocumentNotFoundError: File missing
            StorageError: Any other I/O failure
        """
        target = self._resolve(relative_path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise DocumentNotFoundError(f"Archive missing: {relative_path}") from e
        except OSError as e:
            raise StorageError(f"Could not read {relative_path}: {e}") from e

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).is_file()

    def delete(self, relative_path: str) -> None:
        """
        Remove an archived file. Only used to roll back a failed finalize.

        Raises:
            PathSecurityError: Path escapes the root
            DocumentNotFoundError: File missing
            StorageError: Any other I/O failure
        """
        target = self._resolve(relative_path)
        try:
            target.unlink()
        except FileNotFoundError as e:
            raise DocumentNotFoundError(f"Archive missing: {relative_path}") from e
        except OSError as e:
            raise StorageError(f"Could not delete {relative_path}: {e}") from e

        logger.info(f"Deleted archive {relative_path}")

    def info(self, relative_path: str) -> DocumentInfo:
        target = self._resolve(relative_path)
        try:
            stat = target.stat()
        except FileNotFoundError:
            return DocumentInfo(exists=False)
        except OSError as e:
            raise StorageError(f"Could not stat {relative_path}: {e}") from e

        return DocumentInfo(
            exists=True,
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
