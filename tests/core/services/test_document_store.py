"""Tests for DocumentStore - rooted, write-once archive storage."""

import os
import pytest
from uuid import UUID


ISSUER = UUID("11111111-2222-3333-4444-555555555555")


class TestBuildPath:
    """Tests for DocumentStore.build_path and sanitize_filename."""

    def test_layout(self):
        from core.services.document_store import DocumentStore

        path = DocumentStore.build_path(ISSUER, 2025, "FAC2025-BET-0001")

        assert path == f"{ISSUER}/2025/FAC2025-BET-0001.pdf"

    def test_unsafe_characters_replaced(self):
        from core.services.document_store import sanitize_filename

        assert sanitize_filename("../FAC 2025/01") == "___FAC_2025_01"

    def test_truncated_to_100_characters(self):
        from core.services.document_store import sanitize_filename

        assert len(sanitize_filename("A" * 250)) == 100


class TestWriteRead:
    """Tests for write/read/exists/info/delete."""

    def test_round_trip(self, store):
        store.write("acme/2025/FAC2025-0001.pdf", b"%PDF-1.4 data")

        assert store.read("acme/2025/FAC2025-0001.pdf") == b"%PDF-1.4 data"
        assert store.exists("acme/2025/FAC2025-0001.pdf")

    def test_creates_parent_directories(self, store):
        store.write("a/b/c/doc.pdf", b"x")

        assert (store.root / "a" / "b" / "c" / "doc.pdf").is_file()

    def test_written_file_is_read_only(self, store):
        store.write("acme/doc.pdf", b"x")

        mode = os.stat(store.root / "acme" / "doc.pdf").st_mode & 0o777
        assert mode == 0o444

    def test_no_staging_files_left_behind(self, store):
        store.write("acme/doc.pdf", b"x")

        assert sorted(p.name for p in (store.root / "acme").iterdir()) == ["doc.pdf"]

    def test_existing_path_is_never_overwritten(self, store):
        """A second write to the same path fails and keeps the original bytes."""
        from core.exceptions import DocumentExistsError

        store.write("acme/doc.pdf", b"original")

        with pytest.raises(DocumentExistsError):
            store.write("acme/doc.pdf", b"replacement")

        assert store.read("acme/doc.pdf") == b"original"

    def test_read_missing_raises(self, store):
        from core.exceptions import DocumentNotFoundError

        with pytest.raises(DocumentNotFoundError):
            store.read("acme/missing.pdf")

    def test_exists_false_for_missing(self, store):
        assert store.exists("acme/missing.pdf") is False

    def test_info(self, store):
        store.write("acme/doc.pdf", b"12345")

        info = store.info("acme/doc.pdf")

        assert info.exists is True
        assert info.size == 5
        assert info.modified_at is not None

    def test_info_missing(self, store):
        info = store.info("acme/missing.pdf")

        assert info.exists is False
        assert info.size is None

    def test_delete(self, store):
        store.write("acme/doc.pdf", b"x")

        store.delete("acme/doc.pdf")

        assert store.exists("acme/doc.pdf") is False

    def test_delete_missing_raises(self, store):
        from core.exceptions import DocumentNotFoundError

        with pytest.raises(DocumentNotFoundError):
            store.delete("acme/missing.pdf")


class TestPathSecurity:
    """Paths outside the root are rejected before any file is touched."""

    @pytest.mark.parametrize("path", [
        "../outside.pdf",
        "acme/../../outside.pdf",
        "..",
        "/etc/passwd",
        "C:\\Windows\\system.ini",
        "",
        "acme/\x00.pdf",
    ])
    def test_rejects_escaping_paths(self, store, path):
        from core.exceptions import PathSecurityError

        with pytest.raises(PathSecurityError):
            store.read(path)

    def test_write_outside_root_creates_nothing(self, store, tmp_path):
        from core.exceptions import PathSecurityError

        with pytest.raises(PathSecurityError):
            store.write("../escaped/doc.pdf", b"x")

        assert not (store.root.parent / "escaped").exists()

    def test_delete_outside_root_removes_nothing(self, store):
        from core.exceptions import PathSecurityError

        victim = store.root.parent / "victim.pdf"
        victim.write_bytes(b"keep me")

        with pytest.raises(PathSecurityError):
            store.delete("../victim.pdf")

        assert victim.read_bytes() == b"keep me"

    def test_symlink_pointing_outside_is_rejected(self, store, tmp_path):
        from core.exceptions import PathSecurityError

        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.pdf").write_bytes(b"secret")
        os.symlink(outside, store.root / "link")

        with pytest.raises(PathSecurityError):
            store.read("link/secret.pdf")

    def test_inner_dot_segments_are_allowed(self, store):
        """Segments that normalize to a path inside the root are fine."""
        store.write("acme/2025/../2025/doc.pdf", b"x")

        assert store.read("acme/2025/doc.pdf") == b"x"
