"""
SHA-256 integrity checks for archived invoice PDFs.

Verification never mutates anything. A missing file and an altered file
are reported differently: the first is an operational problem, the second
is tamper evidence.
"""

import hashlib
import hmac
import logging
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from core.exceptions import DocumentNotFoundError, IntegrityError
from core.services.document_store import DocumentStore

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    VALID = "valid"
    TAMPERED = "tampered"
    MISSING = "missing"


class VerificationResult(BaseModel):
    """Outcome of one hash comparison."""

    verified: bool
    current_hash: str
    status: VerificationStatus
    message: str


class VerificationReport(BaseModel):
    """Verification outcome for one finalized invoice, as returned to callers."""

    invoice_id: UUID
    invoice_number: str | None
    verified: bool
    stored_hash: str
    current_hash: str
    status: VerificationStatus
    message: str
    verified_at: datetime
    recent_modification_attempts: bool = False


def hash_bytes(data: bytes) -> str:
    """Lowercase hex SHA-256 of a byte string."""
    return hashlib.sha256(data).hexdigest()


class IntegrityService:
    """Hashing and hash comparison on top of the document store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def hash(data: bytes) -> str:
        return hash_bytes(data)

    def verify(self, relative_path: str, expected_hash: str) -> VerificationResult:
        """
        Recompute the hash of an archived file and compare it to the stored one.

        PathSecurityError and StorageError other than a missing file propagate:
        those mean the check could not run at all.
        """
        try:
            data = self.store.read(relative_path)
        except DocumentNotFoundError:
            logger.warning(f"Archived PDF missing during verification: {relative_path}")
            return VerificationResult(
                verified=False,
                current_hash="",
                status=VerificationStatus.MISSING,
                message="Archived PDF not found on storage; the file was lost or moved",
            )

        current_hash = hash_bytes(data)
        verified = hmac.compare_digest(current_hash, (expected_hash or "").lower())

        if not verified:
            logger.error(
                f"PDF integrity compromised: {relative_path} "
                f"expected={expected_hash} current={current_hash}"
            )
            return VerificationResult(
                verified=False,
                current_hash=current_hash,
                status=VerificationStatus.TAMPERED,
                message="PDF altered: current hash does not match the recorded hash",
            )

        return VerificationResult(
            verified=True,
            current_hash=current_hash,
            status=VerificationStatus.VALID,
            message="PDF intact: no modification detected",
        )

    def ensure_intact(self, relative_path: str, expected_hash: str) -> bytes:
        """
        Read an archived file, refusing to return altered content.

        Raises:
            DocumentNotFoundError: File missing
            IntegrityError: Content no longer matches expected_hash
        """
        data = self.store.read(relative_path)
        current_hash = hash_bytes(data)
        if not hmac.compare_digest(current_hash, expected_hash.lower()):
            logger.error(f"Refusing to serve altered PDF {relative_path}")
            raise IntegrityError(relative_path, expected_hash, current_hash)
        return data
