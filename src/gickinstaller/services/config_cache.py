"""Persistent cache of confirmed installation settings."""

import hashlib
import os
from datetime import datetime
from typing import Any, Dict, Optional

import yaml

from gickinstaller.constants import SECRET_FILE_MODE
from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig


class ConfigCacheService:
    """Stores an InstallationConfig per install target with owner-only permissions."""

    def __init__(self, cache_dir: str, install_dir: str, filesystem_service, logger):
        self.cache_dir = cache_dir
        self.install_dir = os.path.abspath(install_dir)
        self.filesystem_service = filesystem_service
        self.logger = logger

    @property
    def key(self) -> str:
        return hashlib.sha256(self.install_dir.encode("utf-8")).hexdigest()[:16]

    @property
    def cache_file(self) -> str:
        return os.path.join(self.cache_dir, f"config-{self.key}.yml")

    def exists(self) -> bool:
        return os.path.isfile(self.cache_file)

    def load(self) -> Optional[InstallationConfig]:
        if not self.exists():
            return None

        try:
            with open(self.cache_file, "r", encoding="utf-8") as file_obj:
                data = yaml.safe_load(file_obj)
        except (OSError, yaml.YAMLError) as exc:
            raise InstallerError(f"Could not read configuration cache '{self.cache_file}': {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("config"), dict):
            raise InstallerError(f"Configuration cache '{self.cache_file}' has invalid format.")
        if data.get("install_dir") != self.install_dir:
            self.logger.warning(
                "Ignoring configuration cache for %s (expected %s).",
                data.get("install_dir"),
                self.install_dir,
            )
            return None

        try:
            return InstallationConfig.from_dict(data["config"])
        except (TypeError, ValueError) as exc:
            raise InstallerError(f"Configuration cache '{self.cache_file}' is incomplete: {exc}") from exc

    def save(self, config: InstallationConfig, run_copy_path: Optional[str] = None):
        """Persist ``config``; ``run_copy_path`` receives a copy scoped to this run."""
        self.filesystem_service.ensure_dir(self.cache_dir, mode=0o700)
        text = self._dump(config)
        self.filesystem_service.write_file(self.cache_file, text, mode=SECRET_FILE_MODE)
        self.logger.info("Configuration cached at %s", self.cache_file)

        if run_copy_path:
            self.filesystem_service.write_file(run_copy_path, text, mode=SECRET_FILE_MODE)

    def describe(self) -> Optional[Dict[str, Any]]:
        """Return the cached values with secrets masked, for display."""
        config = self.load()
        if config is None:
            return None
        modified = datetime.fromtimestamp(os.path.getmtime(self.cache_file))
        return {
            "path": self.cache_file,
            "modified": modified.strftime("%Y-%m-%d %H:%M:%S"),
            "values": config.masked(),
        }

    def clear(self):
        self.filesystem_service.cleanup_dir(self.cache_dir)
        self.logger.info("Cleared installer cache at %s", self.cache_dir)

    def _dump(self, config: InstallationConfig) -> str:
        payload = {
            "install_dir": self.install_dir,
            "saved_at": datetime.now().isoformat(timespec="seconds"),
            "config": config.to_dict(),
        }
        return yaml.safe_dump(payload, sort_keys=True, default_flow_style=False)
