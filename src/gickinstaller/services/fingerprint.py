"""Content fingerprinting used to skip unchanged frontend builds."""

import hashlib
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from gickinstaller.constants import (
    FINGERPRINT_EXCLUDED_DIRS,
    FINGERPRINT_EXTENSIONS,
    FINGERPRINT_FILENAMES,
)
from gickinstaller.errors import InstallerError
from gickinstaller.models import ContentFingerprint


@dataclass(frozen=True)
class FingerprintDecision:
    rebuild: bool
    reason: str
    fingerprint: Optional[ContentFingerprint]


class FingerprintService:
    """Decides whether a source tree changed since the last successful build.

    The digest covers the git revision (when the tree is a checkout) and the
    sorted per-file SHA-256 of every file whose extension or name is on the
    allowlist. Anything that prevents an exact comparison means "rebuild".
    """

    CHUNK_SIZE = 65536

    def __init__(self, run_cmd, logger):
        self.run_cmd = run_cmd
        self.logger = logger

    def source_revision(self, source_dir: str) -> Optional[str]:
        try:
            result = self.run_cmd(
                ["git", "-C", source_dir, "rev-parse", "HEAD"],
                check=False,
                capture_output=True,
            )
        except InstallerError as exc:
            self.logger.debug("Could not read source revision: %s", exc)
            return None
        if result.returncode != 0:
            return None
        revision = (result.stdout or "").strip()
        return revision or None

    def tracked_files(self, source_dir: str) -> List[str]:
        matches = []
        for current_root, dirs, files in os.walk(source_dir):
            dirs[:] = sorted(d for d in dirs if d not in FINGERPRINT_EXCLUDED_DIRS)
            for file_name in files:
                _, ext = os.path.splitext(file_name)
                if ext.lower() in FINGERPRINT_EXTENSIONS or file_name in FINGERPRINT_FILENAMES:
                    path = os.path.join(current_root, file_name)
                    matches.append(os.path.relpath(path, source_dir).replace(os.sep, "/"))
        return sorted(matches)

    def _file_digest(self, path: str) -> str:
        hasher = hashlib.sha256()
        with open(path, "rb") as file_obj:
            for chunk in iter(lambda: file_obj.read(self.CHUNK_SIZE), b""):
                hasher.update(chunk)
        return hasher.hexdigest()

    def compute(self, source_dir: str) -> ContentFingerprint:
        if not os.path.isdir(source_dir):
            raise InstallerError(f"Source directory not found: {source_dir}")

        revision = self.source_revision(source_dir)
        entries: List[Tuple[str, str]] = []
        try:
            for relpath in self.tracked_files(source_dir):
                entries.append((relpath, self._file_digest(os.path.join(source_dir, relpath))))
        except OSError as exc:
            raise InstallerError(f"Could not fingerprint {source_dir}: {exc}") from exc

        hasher = hashlib.sha256()
        hasher.update(f"revision:{revision or '-'}\n".encode("utf-8"))
        for relpath, digest in entries:
            hasher.update(f"{relpath}\0{digest}\n".encode("utf-8"))

        return ContentFingerprint(digest=hasher.hexdigest(), revision=revision, file_count=len(entries))

    def read_recorded(self, cache_file: str) -> Optional[str]:
        try:
            with open(cache_file, "r", encoding="utf-8") as file_obj:
                value = file_obj.read().strip()
        except OSError:
            return None
        return value or None

    def evaluate(
        self,
        source_dir: str,
        cache_file: str,
        build_output: Optional[str] = None,
    ) -> FingerprintDecision:
        try:
            fingerprint = self.compute(source_dir)
        except InstallerError as exc:
            self.logger.warning("Fingerprint unavailable, rebuilding: %s", exc)
            return FingerprintDecision(rebuild=True, reason="fingerprint unavailable", fingerprint=None)

        if build_output is not None and not os.path.exists(build_output):
            return FingerprintDecision(rebuild=True, reason="build output missing", fingerprint=fingerprint)

        recorded = self.read_recorded(cache_file)
        if recorded is None:
            return FingerprintDecision(rebuild=True, reason="no previous build recorded", fingerprint=fingerprint)
        if recorded != fingerprint.digest:
            return FingerprintDecision(rebuild=True, reason="sources changed", fingerprint=fingerprint)

        return FingerprintDecision(rebuild=False, reason="sources unchanged", fingerprint=fingerprint)

    def needs_rebuild(
        self,
        source_dir: str,
        cache_file: str,
        build_output: Optional[str] = None,
    ) -> bool:
        return self.evaluate(source_dir, cache_file, build_output=build_output).rebuild

    def record(self, fingerprint: ContentFingerprint, cache_file: str):
        """Store ``fingerprint``; call only after the build succeeded."""
        os.makedirs(os.path.dirname(cache_file) or ".", exist_ok=True)
        temp_path = f"{cache_file}.tmp"
        with open(temp_path, "w", encoding="utf-8") as file_obj:
            file_obj.write(fingerprint.digest + "\n")
        os.replace(temp_path, cache_file)
        self.logger.debug("Recorded fingerprint %s for %s file(s).", fingerprint.digest[:12], fingerprint.file_count)
