"""Shared domain models for gickinstaller."""

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from .constants import (
    APP_NAME,
    CONFIG_CACHE_DIR,
    DEFAULT_DB_HOST,
    DEFAULT_DB_PORT,
    DEFAULT_MESSENGER_DSN,
    DEFAULT_NODE_VERSION,
    NGINX_SITES_AVAILABLE,
    NGINX_SITES_ENABLED,
    SUPERUSER_NAME,
    TEMP_DIR,
)

SECRET_FIELDS = (
    "db_password",
    "db_root_password",
    "admin_password",
    "unsplash_api_key",
    "pexels_api_key",
    "iconfinder_api_key",
)


@dataclass(frozen=True)
class InstallationConfig:
    """Settings confirmed by the operator; read-only for the rest of the run."""

    domain: str
    db_name: str
    db_user: str
    db_password: str
    admin_email: str
    admin_password: str
    admin_first_name: str
    admin_last_name: str
    base_path: str = ""
    db_host: str = DEFAULT_DB_HOST
    db_port: int = DEFAULT_DB_PORT
    db_root_password: str = ""
    db_user_can_create: bool = False
    app_name: str = APP_NAME
    mail_from_address: str = ""
    unsplash_api_key: str = ""
    pexels_api_key: str = ""
    iconfinder_api_key: str = ""
    node_version: str = DEFAULT_NODE_VERSION
    install_imagemagick: bool = True
    install_ffmpeg: bool = True
    messenger_transport_dsn: str = DEFAULT_MESSENGER_DSN

    @property
    def uses_superuser(self) -> bool:
        return bool(self.db_root_password)

    @property
    def public_base_path(self) -> str:
        """Prefix the frontend build puts in front of every asset URL."""
        return f"{self.base_path}/"

    @property
    def frontend_url(self) -> str:
        return f"https://{self.domain}{self.base_path}"

    @property
    def backend_url(self) -> str:
        return f"{self.frontend_url}/api"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstallationConfig":
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "db_port" in values:
            values["db_port"] = int(values["db_port"])
        return cls(**values)

    def masked(self) -> Dict[str, Any]:
        data = self.to_dict()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data


@dataclass(frozen=True)
class DatabaseAdminCredential:
    """Identity used to create the database and, when allowed, the app user."""

    user: str
    password: str
    is_superuser: bool


def select_admin_credential(config: InstallationConfig) -> DatabaseAdminCredential:
    if config.uses_superuser:
        return DatabaseAdminCredential(
            user=SUPERUSER_NAME,
            password=config.db_root_password,
            is_superuser=True,
        )
    return DatabaseAdminCredential(
        user=config.db_user,
        password=config.db_password,
        is_superuser=False,
    )


@dataclass
class PhaseRecord:
    """Ordered phases plus the ones already completed."""

    phases: Tuple[str, ...]
    completed: List[str] = field(default_factory=list)

    def is_completed(self, phase: str) -> bool:
        return phase in self.completed

    def mark_completed(self, phase: str):
        if phase not in self.phases:
            raise ValueError(f"Unknown phase: {phase}")
        if phase not in self.completed:
            self.completed.append(phase)

    @property
    def pending(self) -> List[str]:
        return [phase for phase in self.phases if phase not in self.completed]


@dataclass(frozen=True)
class ContentFingerprint:
    digest: str
    revision: Optional[str]
    file_count: int


@dataclass(frozen=True)
class RenderedServerConfig:
    """Generated nginx site; `shape` is either "root" or "subdirectory"."""

    shape: str
    site_name: str
    text: str


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of one database provisioning pass.

    ``convergence`` names the schema path that succeeded: "migrations",
    "schema_update" or "schema_recreate".
    """

    fresh: bool
    cleared: bool
    convergence: str
    seeded: bool


@dataclass(frozen=True)
class InstallPaths:
    """Filesystem locations used by one run."""

    install_dir: str
    temp_dir: str = TEMP_DIR
    cache_dir: str = CONFIG_CACHE_DIR
    nginx_available_dir: str = NGINX_SITES_AVAILABLE
    nginx_enabled_dir: str = NGINX_SITES_ENABLED

    @property
    def backend_dir(self) -> str:
        return os.path.join(self.install_dir, "backend")

    @property
    def backend_public_dir(self) -> str:
        return os.path.join(self.backend_dir, "public")

    @property
    def webroot(self) -> str:
        return os.path.join(self.install_dir, "public")

    @property
    def source_dir(self) -> str:
        # outlives temp_dir; the frontend fingerprint is computed over it
        return os.path.join(self.cache_dir, "source")

    @property
    def backend_source_dir(self) -> str:
        return os.path.join(self.source_dir, "backend")

    @property
    def frontend_source_dir(self) -> str:
        return os.path.join(self.source_dir, "frontend")

    @property
    def scripts_source_dir(self) -> str:
        return os.path.join(self.source_dir, "scripts")

    @property
    def shapes_dir(self) -> str:
        return os.path.join(self.temp_dir, "shapes")

    @property
    def frontend_build_dir(self) -> str:
        return os.path.join(self.temp_dir, "frontend-build")

    @property
    def media_build_dir(self) -> str:
        return os.path.join(self.temp_dir, "media-build")

    @property
    def state_file(self) -> str:
        return os.path.join(self.cache_dir, "phase-state.json")

    @property
    def fingerprint_file(self) -> str:
        return os.path.join(self.cache_dir, "frontend.fingerprint")

    @property
    def run_config_file(self) -> str:
        return os.path.join(self.temp_dir, "config.yml")
