"""Tests for single-object uploads, downloads and deletes."""

from __future__ import annotations

import hashlib
import io
import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from s3copy.core.config import TransferOptions
from s3copy.core.crypto import HEADER_SIZE, DecryptionError, decrypt_stream
from s3copy.storage import StorageError, TransientStorageError
from s3copy.sync.transfers import FileDownloader, FileUploader, delete_local, delete_remote
from s3copy.sync.types import DeleteError, DownloadError, UploadError

if TYPE_CHECKING:
    from conftest import MemoryObjectStore

PASSWORD = "transfer-secret"


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """Create a local file to upload."""
    path = tmp_path / "report.txt"
    path.write_bytes(b"quarterly numbers")
    os.utime(path, (1_700_000_000, 1_700_000_000))
    return path


class TestFileUploader:
    """Tests for FileUploader."""

    def test_upload_sets_metadata(
        self, store: MemoryObjectStore, options: TransferOptions, source_file: Path
    ) -> None:
        """Uploads should store the content with local-md5 and local-mtime metadata."""
        result = FileUploader(store, options).upload_file(source_file, "docs/report.txt")

        assert not result.skipped
        assert result.size == len(b"quarterly numbers")
        assert store.data("docs/report.txt") == b"quarterly numbers"
        assert store.metadata("docs/report.txt") == {
            "local-md5": hashlib.md5(b"quarterly numbers").hexdigest(),
            "local-mtime": "1700000000",
        }

    def test_skips_identical(
        self, store: MemoryObjectStore, options: TransferOptions, source_file: Path
    ) -> None:
        """An object with the same checksum should not be uploaded again."""
        uploader = FileUploader(store, options)
        uploader.upload_file(source_file, "k")

        result = uploader.upload_file(source_file, "k")

        assert result.skipped
        assert store.count("upload", "k") == 1

    def test_skips_on_metadata_match(
        self, store: MemoryObjectStore, options: TransferOptions, source_file: Path
    ) -> None:
        """A multipart-style object should be skipped when its local-md5 matches."""
        md5 = hashlib.md5(b"quarterly numbers").hexdigest()
        store.put("k", b"quarterly numbers", {"local-md5": md5}, etag="9b2cf535f27731c974343645a3985328-2")

        assert FileUploader(store, options).upload_file(source_file, "k").skipped

    def test_multipart_without_metadata_uploads(
        self, store: MemoryObjectStore, options: TransferOptions, source_file: Path
    ) -> None:
        """A multipart-style object without local-md5 should be uploaded again."""
        store.put("k", b"quarterly numbers", etag="9b2cf535f27731c974343645a3985328-2")

        result = FileUploader(store, options).upload_file(source_file, "k")

        assert not result.skipped
        assert store.count("upload", "k") == 1

    def test_force_uploads_anyway(self, store: MemoryObjectStore, source_file: Path) -> None:
        """force should bypass the existence check."""
        options = TransferOptions(force=True, retries=0)
        uploader = FileUploader(store, options)
        uploader.upload_file(source_file, "k")
        uploader.upload_file(source_file, "k")

        assert store.count("upload", "k") == 2
        assert store.count("head") == 0

    def test_check_existing_disabled(
        self, store: MemoryObjectStore, options: TransferOptions, source_file: Path
    ) -> None:
        """check_existing=False should upload without a HEAD request."""
        FileUploader(store, options).upload_file(source_file, "k", check_existing=False)
        assert store.count("head") == 0
        assert store.count("upload") == 1

    def test_missing_file(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """A missing source file should raise UploadError."""
        with pytest.raises(UploadError, match="Failed to upload"):
            FileUploader(store, options).upload_file(tmp_path / "missing", "k")

    def test_transient_failure_retried(self, store: MemoryObjectStore, source_file: Path) -> None:
        """Transient failures should be retried."""
        store.fail("upload", "k", TransientStorageError("SlowDown"))
        options = TransferOptions(retries=2)

        FileUploader(store, options).upload_file(source_file, "k", check_existing=False)

        assert store.count("upload", "k") == 2
        assert store.data("k") == b"quarterly numbers"

    def test_permanent_failure(self, store: MemoryObjectStore, source_file: Path) -> None:
        """Permanent failures should not be retried."""
        store.fail("upload", "k", StorageError("AccessDenied"))
        options = TransferOptions(retries=3)

        with pytest.raises(UploadError, match="AccessDenied"):
            FileUploader(store, options).upload_file(source_file, "k", check_existing=False)

        assert store.count("upload", "k") == 1

    def test_encrypted_upload(self, store: MemoryObjectStore, source_file: Path) -> None:
        """Encrypted uploads should store ciphertext without a plaintext checksum."""
        options = TransferOptions(password=PASSWORD, retries=0)

        result = FileUploader(store, options).upload_file(source_file, "secret.txt")

        assert result.encrypted
        stored = store.data("secret.txt")
        assert b"quarterly" not in stored
        assert len(stored) > HEADER_SIZE
        assert store.metadata("secret.txt") == {"local-mtime": "1700000000"}
        assert store.count("head") == 0

        plain = io.BytesIO()
        decrypt_stream(PASSWORD, io.BytesIO(stored), plain)
        assert plain.getvalue() == b"quarterly numbers"

    def test_encrypted_upload_failure_does_not_hang(self, store: MemoryObjectStore, tmp_path: Path) -> None:
        """A rejected encrypted upload should stop the encryption thread and raise."""
        big = tmp_path / "big.bin"
        big.write_bytes(os.urandom(6 * 1024 * 1024))
        store.fail("upload", "big.bin", StorageError("EntityTooLarge"))
        options = TransferOptions(password=PASSWORD, retries=0)

        with pytest.raises(UploadError, match="EntityTooLarge"):
            FileUploader(store, options).upload_file(big, "big.bin")

        assert "big.bin" not in store.objects


class TestFileDownloader:
    """Tests for FileDownloader."""

    def test_download(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """Downloads should create parent directories and write the content."""
        store.put("a/b/c.txt", b"contents")
        target = tmp_path / "out" / "nested" / "c.txt"

        result = FileDownloader(store, options).download_file("a/b/c.txt", target)

        assert target.read_bytes() == b"contents"
        assert result.size == 8
        assert not result.skipped

    def test_no_partial_files_left(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """Only the final file should remain after a download."""
        store.put("k", b"x")
        FileDownloader(store, options).download_file("k", tmp_path / "k")
        assert [p.name for p in tmp_path.iterdir()] == ["k"]

    def test_sets_mod_time(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """mod_time should be applied to the downloaded file."""
        store.put("k", b"x")
        target = tmp_path / "k"

        FileDownloader(store, options).download_file("k", target, mod_time=1_600_000_000)

        assert int(target.stat().st_mtime) == 1_600_000_000

    def test_missing_object(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """A missing object should raise DownloadError and leave nothing behind."""
        with pytest.raises(DownloadError, match="Object not found: nope"):
            FileDownloader(store, options).download_file("nope", tmp_path / "nope")
        assert list(tmp_path.iterdir()) == []

    def test_failure_keeps_existing_file(
        self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path
    ) -> None:
        """A failed download should not touch the existing local file."""
        target = tmp_path / "keep.txt"
        target.write_bytes(b"old version")
        store.put("keep.txt", b"new version")
        store.fail("download", "keep.txt", StorageError("AccessDenied"))

        with pytest.raises(DownloadError):
            FileDownloader(store, options).download_file("keep.txt", target)

        assert target.read_bytes() == b"old version"
        assert [p.name for p in tmp_path.iterdir()] == ["keep.txt"]

    def test_failure_midway_keeps_existing_file(
        self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path
    ) -> None:
        """A download that breaks after writing some bytes should leave the old file untouched."""
        target = tmp_path / "keep.txt"
        target.write_bytes(b"old version")
        store.put("keep.txt", b"new version " * 1000)
        store.fail_midway("keep.txt", 5000, StorageError("connection lost"))

        with pytest.raises(DownloadError, match="connection lost"):
            FileDownloader(store, options).download_file("keep.txt", target)

        assert target.read_bytes() == b"old version"
        assert [p.name for p in tmp_path.iterdir()] == ["keep.txt"]

    def test_encrypted_failure_midway_keeps_existing_file(
        self, store: MemoryObjectStore, source_file: Path, tmp_path: Path
    ) -> None:
        """An encrypted download cut off mid-stream should leave the old file untouched."""
        options = TransferOptions(password=PASSWORD, retries=0)
        FileUploader(store, options).upload_file(source_file, "enc")
        store.fail_midway("enc", HEADER_SIZE + 10, StorageError("connection lost"))
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        target = out_dir / "restored.txt"
        target.write_bytes(b"previous")

        with pytest.raises(DownloadError):
            FileDownloader(store, options).download_file("enc", target)

        assert target.read_bytes() == b"previous"
        assert [p.name for p in out_dir.iterdir()] == ["restored.txt"]

    def test_transient_failure_midway_retried(self, store: MemoryObjectStore, tmp_path: Path) -> None:
        """A retried download should not keep bytes from the broken attempt."""
        store.put("k", b"0123456789" * 100)
        store.fail_midway("k", 300, TransientStorageError("connection reset"))

        FileDownloader(store, TransferOptions(retries=1)).download_file("k", tmp_path / "k")

        assert (tmp_path / "k").read_bytes() == b"0123456789" * 100

    def test_transient_failure_retried(self, store: MemoryObjectStore, tmp_path: Path) -> None:
        """Transient download failures should be retried."""
        store.put("k", b"data")
        store.fail("download", "k", TransientStorageError("connection reset"))

        FileDownloader(store, TransferOptions(retries=1)).download_file("k", tmp_path / "k")

        assert (tmp_path / "k").read_bytes() == b"data"
        assert store.count("download", "k") == 2

    def test_skip_existing(self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path) -> None:
        """An identical local file should be skipped when asked."""
        store.put("k", b"same")
        target = tmp_path / "k"
        target.write_bytes(b"same")

        result = FileDownloader(store, options).download_file("k", target, skip_existing=True)

        assert result.skipped
        assert store.count("download") == 0

    def test_skip_existing_downloads_when_different(
        self, store: MemoryObjectStore, options: TransferOptions, tmp_path: Path
    ) -> None:
        """A different local file should be replaced."""
        store.put("k", b"remote")
        target = tmp_path / "k"
        target.write_bytes(b"local")

        result = FileDownloader(store, options).download_file("k", target, skip_existing=True)

        assert not result.skipped
        assert target.read_bytes() == b"remote"

    def test_encrypted_roundtrip(self, store: MemoryObjectStore, source_file: Path, tmp_path: Path) -> None:
        """An encrypted upload should download back to the original bytes."""
        options = TransferOptions(password=PASSWORD, retries=0)
        FileUploader(store, options).upload_file(source_file, "enc")
        target = tmp_path / "restored.txt"

        result = FileDownloader(store, options).download_file("enc", target)

        assert target.read_bytes() == b"quarterly numbers"
        assert result.size == len(b"quarterly numbers")

    def test_wrong_password_not_retried(self, store: MemoryObjectStore, source_file: Path, tmp_path: Path) -> None:
        """A decryption failure should not be retried and should keep the old file."""
        FileUploader(store, TransferOptions(password=PASSWORD, retries=0)).upload_file(source_file, "enc")
        target = tmp_path / "restored.txt"
        target.write_bytes(b"previous")

        with pytest.raises(DownloadError, match="wrong password") as exc_info:
            FileDownloader(store, TransferOptions(password="wrong", retries=3)).download_file("enc", target)

        assert isinstance(exc_info.value.__cause__, DecryptionError)
        assert store.count("download", "enc") == 1
        assert target.read_bytes() == b"previous"

    def test_encrypted_large_object(self, store: MemoryObjectStore, tmp_path: Path) -> None:
        """Objects larger than the pipe buffer should stream through decryption."""
        data = os.urandom(5 * 1024 * 1024 + 17)
        source = tmp_path / "large.bin"
        source.write_bytes(data)
        options = TransferOptions(password=PASSWORD, retries=0)
        FileUploader(store, options).upload_file(source, "large.bin")

        target = tmp_path / "large.out"
        FileDownloader(store, options).download_file("large.bin", target)

        assert target.read_bytes() == data


class TestDeletes:
    """Tests for delete_remote and delete_local."""

    def test_delete_remote(self, store: MemoryObjectStore, options: TransferOptions) -> None:
        """delete_remote() should remove the object."""
        store.put("k", b"x")
        delete_remote(store, "k", options)
        assert "k" not in store.objects

    def test_delete_remote_failure(self, store: MemoryObjectStore, options: TransferOptions) -> None:
        """A failed delete should raise DeleteError."""
        store.fail("delete", "k", StorageError("AccessDenied"))
        with pytest.raises(DeleteError, match="Failed to delete k"):
            delete_remote(store, "k", options)

    def test_delete_local(self, tmp_path: Path) -> None:
        """delete_local() should remove the file and accept a missing one."""
        path = tmp_path / "f"
        path.write_bytes(b"x")
        delete_local(path)
        delete_local(path)
        assert not path.exists()

    def test_delete_local_failure(self, tmp_path: Path) -> None:
        """Deleting a directory as a file should raise DeleteError."""
        with pytest.raises(DeleteError):
            delete_local(tmp_path)
