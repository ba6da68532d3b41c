"""
Local disk storage gateway.
"""

import io
import os

import pytest

from sharezone.storage import BlobNotFound, LocalStorageGateway, StorageError
from sharezone.storage.local import HANDLE_RE


class TestLocalStorageGateway:
    """Blobs are written atomically and addressed by opaque handles."""

    def test_put_get_delete(self, tmp_path):
        storage = LocalStorageGateway([str(tmp_path / "a")])
        handle = storage.put(io.BytesIO(b"hello"), "application/pdf", "Report.PDF")

        assert HANDLE_RE.match(handle)
        assert handle.endswith(".pdf")
        location = storage.get(handle)
        assert location.url is None
        with open(location.path, "rb") as f:
            assert f.read() == b"hello"

        assert storage.delete(handle) is True
        assert storage.delete(handle) is False
        with pytest.raises(BlobNotFound):
            storage.get(handle)

    def test_no_partial_files_left_behind(self, tmp_path):
        root = tmp_path / "a"
        storage = LocalStorageGateway([str(root)])
        storage.put(io.BytesIO(b"data"), "image/png", "x.png")

        assert not [name for name in os.listdir(root) if name.endswith(".part")]

    def test_failed_write_raises_storage_error(self, tmp_path):
        storage = LocalStorageGateway([str(tmp_path / "a")])

        class BrokenStream(io.RawIOBase):
            def readable(self):
                return True

            def readinto(self, b):
                raise OSError("connection reset")

        with pytest.raises(StorageError):
            storage.put(BrokenStream(), "application/pdf", "a.pdf")
        assert list(storage.iter_blobs()) == []
        assert os.listdir(tmp_path / "a") == []

    def test_lookup_scans_every_root(self, tmp_path):
        first = LocalStorageGateway([str(tmp_path / "a")])
        handle = first.put(io.BytesIO(b"x"), "application/pdf", "a.pdf")

        both = LocalStorageGateway([str(tmp_path / "b"), str(tmp_path / "a")])
        assert both.get(handle).path == os.path.join(str(tmp_path / "a"), handle)
        assert [h for h, _ in both.iter_blobs()] == [handle]

    @pytest.mark.parametrize("handle", ["../etc/passwd", "", "not-a-handle", "A" * 32])
    def test_rejects_foreign_handles(self, tmp_path, handle):
        storage = LocalStorageGateway([str(tmp_path / "a")])
        with pytest.raises(BlobNotFound):
            storage.get(handle)
        assert storage.delete(handle) is False

    def test_iter_blobs_ignores_unrelated_files(self, tmp_path):
        root = tmp_path / "a"
        storage = LocalStorageGateway([str(root)])
        (root / "README.txt").write_text("not a blob")
        handle = storage.put(io.BytesIO(b"x"), "application/zip", "bundle.zip")

        assert [h for h, _ in storage.iter_blobs()] == [handle]

    def test_requires_a_root(self):
        with pytest.raises(StorageError):
            LocalStorageGateway([])
