"""Unit tests for storage layer."""

import asyncio
import pytest
import pytest_asyncio
from pathlib import Path
import tempfile
import shutil

from scene_generator.storage import FilesystemStorage, StorageError
from scene_generator.storage.utils import (
    extension_for_mime,
    sanitize_filename,
    validate_file_path,
    validate_file_size,
    validate_image_type,
)


@pytest_asyncio.fixture
async def temp_storage_dir():
    """Create a temporary directory for storage tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest_asyncio.fixture
async def storage(temp_storage_dir):
    """Create a filesystem storage instance."""
    return FilesystemStorage(temp_storage_dir)


@pytest.fixture
def sample_png():
    # PNG header + minimal data
    return b'\x89PNG\r\n\x1a\n' + b'\x00' * 100


@pytest.fixture
def sample_jpeg():
    return b'\xff\xd8\xff\xe0' + b'\x00' * 100


class TestFilesystemStorage:
    """Test filesystem storage implementation."""

    def test_creates_exports_directory(self, temp_storage_dir):
        FilesystemStorage(temp_storage_dir)
        assert (Path(temp_storage_dir) / "exports").is_dir()

    @pytest.mark.asyncio
    async def test_upload_writes_content(self, storage, sample_png):
        """Test basic upload."""
        path = await storage.upload("test.png", sample_png)
        assert path == "test.png"

        assert Path(storage.get_local_path(path)).read_bytes() == sample_png

    @pytest.mark.asyncio
    async def test_upload_with_subdirectory(self, storage, sample_png):
        path = await storage.upload("sessions/abc/grid.png", sample_png)
        assert path == "sessions/abc/grid.png"
        assert Path(storage.get_local_path(path)).is_file()
        # No temp file left behind
        assert not Path(storage.get_local_path(path) + ".tmp").exists()

    @pytest.mark.asyncio
    async def test_upload_sanitizes_filename(self, storage, sample_png):
        path = await storage.upload("scene<>:|?.png", sample_png)
        for char in "<>:|?":
            assert char not in path

    @pytest.mark.asyncio
    async def test_upload_invalid_file_type(self, storage, sample_png):
        """Test rejection of invalid file types."""
        with pytest.raises(StorageError, match="File type not allowed"):
            await storage.upload("script.sh", b"#!/bin/sh\nrm -rf /")

        # Signature must match the extension
        with pytest.raises(StorageError, match="File type not allowed"):
            await storage.upload("photo.jpg", sample_png)

    @pytest.mark.asyncio
    async def test_upload_file_too_large(self, storage):
        large_content = b'\x89PNG' + b'\x00' * (51 * 1024 * 1024)
        with pytest.raises(StorageError, match="Invalid file size"):
            await storage.upload("large.png", large_content)

    @pytest.mark.asyncio
    async def test_export_image(self, storage, sample_jpeg, temp_storage_dir):
        path = await storage.export_image(sample_jpeg, "scene", "image/jpeg")

        exported = Path(path)
        assert exported.is_absolute()
        assert exported.parent == (Path(temp_storage_dir) / "exports").resolve()
        assert exported.name.startswith("scene_")
        assert exported.suffix == ".jpg"
        assert exported.read_bytes() == sample_jpeg

    @pytest.mark.asyncio
    async def test_export_defaults_to_png(self, storage, sample_png):
        path = await storage.export_image(sample_png, "grid")
        assert path.endswith(".png")

    @pytest.mark.asyncio
    async def test_concurrent_exports(self, storage, sample_png, temp_storage_dir):
        paths = await asyncio.gather(*[storage.export_image(sample_png, f"grid{i}") for i in range(5)])

        assert len(set(paths)) == 5
        assert len(list((Path(temp_storage_dir) / "exports").iterdir())) == 5

    @pytest.mark.asyncio
    async def test_path_traversal_prevention(self, storage, sample_png):
        """Test path traversal attack prevention."""
        malicious_paths = [
            "../../../etc/passwd.png",
            "..\\..\\windows\\system32\\config",
            "~/../../root/.ssh/id_rsa",
            "/etc/passwd",
        ]

        for path in malicious_paths:
            with pytest.raises(StorageError):
                await storage.upload(path, sample_png)

        with pytest.raises(StorageError):
            storage.get_local_path("../outside.png")


class TestStorageUtils:
    """Test storage utility functions."""

    def test_validate_file_path(self):
        assert validate_file_path("file.png")
        assert validate_file_path("exports/grid_1.png")

        assert not validate_file_path("")
        assert not validate_file_path("../etc/passwd")
        assert not validate_file_path("/etc/passwd")
        assert not validate_file_path("..\\windows\\system32")
        assert not validate_file_path("~/root/.ssh/id_rsa")

    def test_sanitize_filename(self):
        assert sanitize_filename("normal.png") == "normal.png"
        assert sanitize_filename("my file.png") == "my file.png"
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("file<>:|?.png") == "file_____.png"
        assert sanitize_filename("...hidden") == "_.hidden"
        assert sanitize_filename("a" * 250 + ".png") == "a" * 200 + ".png"

    def test_validate_image_type(self):
        assert validate_image_type("image.png", b'\x89PNG\r\n\x1a\n')
        assert validate_image_type("image.jpeg", b'\xff\xd8\xff')
        assert validate_image_type("image.webp", b'RIFF\x00\x00\x00\x00WEBP')

        assert not validate_image_type("image.png", b'\xff\xd8\xff')
        assert not validate_image_type("clip.mp4", b'\x00\x00\x00\x18ftypmp42')
        assert not validate_image_type("executable.exe", b'MZ\x90\x00')

    def test_validate_file_size(self):
        assert validate_file_size(1024)
        assert validate_file_size(50 * 1024 * 1024)
        assert not validate_file_size(0)
        assert not validate_file_size(-1)
        assert not validate_file_size(51 * 1024 * 1024)

    def test_extension_for_mime(self):
        assert extension_for_mime("image/jpeg") == ".jpg"
        assert extension_for_mime("IMAGE/WEBP") == ".webp"
        assert extension_for_mime(None) == ".png"
