"""Tests for IntegrityService - SHA-256 tamper detection."""

import hashlib
import os
import pytest

PATH = "acme/2025/FAC2025-0001.pdf"
CONTENT = b"%PDF-1.4\nFAC2025-0001\n%%EOF\n"


def _tamper(store, relative_path, data):
    """Overwrite an archived file in place, bypassing the store."""
    target = store.root / relative_path
    os.chmod(target, 0o644)
    target.write_bytes(data)


class TestHash:
    """Tests for hash_bytes."""

    def test_matches_sha256_hex(self):
        from core.services.integrity_service import hash_bytes

        assert hash_bytes(CONTENT) == hashlib.sha256(CONTENT).hexdigest()

    def test_is_64_lowercase_hex(self):
        from core.services.integrity_service import hash_bytes

        digest = hash_bytes(b"")
        assert len(digest) == 64
        assert digest == digest.lower()


class TestVerify:
    """Tests for IntegrityService.verify."""

    def test_untouched_file_is_valid(self, store, integrity):
        from core.services.integrity_service import VerificationStatus

        store.write(PATH, CONTENT)

        result = integrity.verify(PATH, integrity.hash(CONTENT))

        assert result.verified is True
        assert result.status == VerificationStatus.VALID
        assert result.current_hash == integrity.hash(CONTENT)

    def test_uppercase_expected_hash_still_matches(self, store, integrity):
        store.write(PATH, CONTENT)

        result = integrity.verify(PATH, integrity.hash(CONTENT).upper())

        assert result.verified is True

    def test_modified_file_is_tampered(self, store, integrity):
        from core.services.integrity_service import VerificationStatus

        store.write(PATH, CONTENT)
        expected = integrity.hash(CONTENT)
        _tamper(store, PATH, CONTENT + b"% altered total\n")

        result = integrity.verify(PATH, expected)

        assert result.verified is False
        assert result.status == VerificationStatus.TAMPERED
        assert result.current_hash != expected

    def test_missing_file_is_reported_distinctly(self, integrity):
        from core.services.integrity_service import VerificationStatus

        result = integrity.verify(PATH, "0" * 64)

        assert result.verified is False
        assert result.status == VerificationStatus.MISSING
        assert result.current_hash == ""

    def test_verification_does_not_modify_file(self, store, integrity):
        store.write(PATH, CONTENT)
        before = os.stat(store.root / PATH).st_mtime_ns

        integrity.verify(PATH, "0" * 64)

        assert os.stat(store.root / PATH).st_mtime_ns == before
        assert store.read(PATH) == CONTENT

    def test_escaping_path_raises(self, integrity):
        from core.exceptions import PathSecurityError

        with pytest.raises(PathSecurityError):
            integrity.verify("../../etc/passwd", "0" * 64)


class TestEnsureIntact:
    """Tests for IntegrityService.ensure_intact."""

    def test_returns_bytes_when_intact(self, store, integrity):
        store.write(PATH, CONTENT)

        assert integrity.ensure_intact(PATH, integrity.hash(CONTENT)) == CONTENT

    def test_raises_on_mismatch(self, store, integrity):
        from core.exceptions import IntegrityError

        store.write(PATH, CONTENT)
        expected = integrity.hash(CONTENT)
        _tamper(store, PATH, b"forged")

        with pytest.raises(IntegrityError) as exc_info:
            integrity.ensure_intact(PATH, expected)

        assert exc_info.value.expected_hash == expected
        assert exc_info.value.current_hash == integrity.hash(b"forged")

    def test_raises_when_missing(self, integrity):
        from core.exceptions import DocumentNotFoundError

        with pytest.raises(DocumentNotFoundError):
            integrity.ensure_intact(PATH, "0" * 64)
