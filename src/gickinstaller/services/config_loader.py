"""Configuration loader for gickinstaller."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig


class ConfigLoader:
    """Loads YAML answers files used for CLI defaults and unattended runs."""

    OPTION_KEYS = {
        "install_dir",
        "force_reinstall",
        "update_installer",
        "skip_update_check",
        "unattended",
        "clear_database",
        "verbose",
        "log_file",
    }
    ANSWER_KEYS = {name for name in InstallationConfig.__dataclass_fields__}
    SUPPORTED_KEYS = OPTION_KEYS | ANSWER_KEYS

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise InstallerError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise InstallerError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise InstallerError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise InstallerError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    @classmethod
    def split_answers(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        """Return only the installation answers from a loaded mapping."""
        return {key: value for key, value in values.items() if key in cls.ANSWER_KEYS}
