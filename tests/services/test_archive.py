import io
import tarfile
import zipfile

import pytest

from gickinstaller.errors import InstallerError
from gickinstaller.services.archive import ArchiveService


def test_archive_service_blocks_path_traversal(tmp_path):
    service = ArchiveService()

    zip_path = tmp_path / "malicious.zip"
    with zipfile.ZipFile(zip_path, "w") as zip_file:
        zip_file.writestr("../escape.txt", "malicious")

    destination = tmp_path / "extract"
    destination.mkdir()

    with pytest.raises(InstallerError):
        service.safe_extract_zip(str(zip_path), str(destination))

    assert not (tmp_path / "escape.txt").exists()


def test_archive_service_extracts_valid_zip(tmp_path):
    service = ArchiveService()

    zip_path = tmp_path / "valid.zip"
    with zipfile.ZipFile(zip_path, "w") as zip_file:
        zip_file.writestr("installer-main/pyproject.toml", "[project]\n")

    destination = tmp_path / "extract"
    destination.mkdir()

    service.safe_extract_zip(str(zip_path), str(destination))

    assert (destination / "installer-main" / "pyproject.toml").read_text(encoding="utf-8") == "[project]\n"


def _add_file(tar_ref, name, payload, mode=0o644):
    info = tarfile.TarInfo(name)
    info.size = len(payload)
    info.mode = mode
    tar_ref.addfile(info, io.BytesIO(payload))


def test_safe_extract_tar_keeps_executable_bit(tmp_path):
    tar_path = tmp_path / "source.tar.gz"
    with tarfile.open(tar_path, "w:gz") as tar_ref:
        _add_file(tar_ref, "ffmpeg/configure", b"#!/bin/sh\n", mode=0o755)
        _add_file(tar_ref, "ffmpeg/README", b"docs\n")

    destination = tmp_path / "extract"
    ArchiveService().safe_extract_tar(str(tar_path), str(destination))

    configure = destination / "ffmpeg" / "configure"
    assert configure.read_bytes() == b"#!/bin/sh\n"
    assert configure.stat().st_mode & 0o111
    assert not (destination / "ffmpeg" / "README").stat().st_mode & 0o111


def test_safe_extract_tar_rejects_traversal_and_links(tmp_path):
    traversal = tmp_path / "traversal.tar"
    with tarfile.open(traversal, "w") as tar_ref:
        _add_file(tar_ref, "../escape.txt", b"x")

    with pytest.raises(InstallerError, match="path traversal"):
        ArchiveService().safe_extract_tar(str(traversal), str(tmp_path / "a"))
    assert not (tmp_path / "escape.txt").exists()

    linked = tmp_path / "linked.tar"
    with tarfile.open(linked, "w") as tar_ref:
        info = tarfile.TarInfo("src/passwd")
        info.type = tarfile.SYMTYPE
        info.linkname = "/etc/passwd"
        tar_ref.addfile(info)

    with pytest.raises(InstallerError, match="is a link"):
        ArchiveService().safe_extract_tar(str(linked), str(tmp_path / "b"))


def test_safe_extract_tar_rejects_garbage(tmp_path):
    bogus = tmp_path / "bogus.tar.gz"
    bogus.write_bytes(b"not an archive")

    with pytest.raises(InstallerError, match="Invalid TAR archive"):
        ArchiveService().safe_extract_tar(str(bogus), str(tmp_path / "out"))
