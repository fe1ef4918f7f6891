"""Archive extraction helpers for gickinstaller."""

import os
import shutil
import tarfile
import zipfile
from pathlib import Path

from gickinstaller.errors import InstallerError


class ArchiveService:
    """Encapsulates safe archive extraction logic."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def _checked_target(self, base: Path, name: str, kind: str) -> Path:
        normalized_name = name.replace("\\", "/")
        target_path = (base / normalized_name).resolve()
        if not self.is_within_dir(base, target_path):
            raise InstallerError(
                f"Unsafe {kind} entry detected: `{name}`. "
                "Archive extraction aborted to prevent path traversal."
            )
        return target_path

    def safe_extract_zip(self, zip_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                for member in zip_ref.infolist():
                    self._checked_target(base, member.filename, "ZIP")
                    file_type = (member.external_attr >> 16) & 0o170000
                    if file_type == 0o120000:
                        raise InstallerError(
                            f"Unsafe ZIP entry detected: `{member.filename}` is a symbolic link."
                        )

                for member in zip_ref.infolist():
                    target_path = self._checked_target(base, member.filename, "ZIP")
                    if member.is_dir() or member.filename.endswith("/"):
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except zipfile.BadZipFile as exc:
            raise InstallerError(f"Invalid ZIP archive: {zip_path}") from exc

    def safe_extract_tar(self, tar_path: str, destination_dir: str):
        """Extract a (compressed) tarball, refusing links and escaping paths."""
        base = Path(destination_dir).resolve()
        base.mkdir(parents=True, exist_ok=True)

        try:
            with tarfile.open(tar_path, "r:*") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    self._checked_target(base, member.name, "TAR")
                    if member.issym() or member.islnk():
                        raise InstallerError(
                            f"Unsafe TAR entry detected: `{member.name}` is a link."
                        )
                    if not (member.isfile() or member.isdir()):
                        raise InstallerError(
                            f"Unsafe TAR entry detected: `{member.name}` is a special file."
                        )

                for member in members:
                    target_path = self._checked_target(base, member.name, "TAR")
                    if member.isdir():
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    source = tar_ref.extractfile(member)
                    if source is None:
                        continue
                    with source, open(target_path, "wb") as dst:
                        shutil.copyfileobj(source, dst)
                    # Keep the executable bit; configure scripts need it.
                    os.chmod(target_path, 0o644 | (member.mode & 0o111))
        except tarfile.TarError as exc:
            raise InstallerError(f"Invalid TAR archive: {tar_path}") from exc
