"""Generation of the backend and frontend environment files."""

import os
import secrets
from typing import Dict
from urllib.parse import quote

from gickinstaller.constants import SECRET_FILE_MODE
from gickinstaller.models import InstallationConfig, InstallPaths

FRONTEND_ENV_FILE = ".env.production"


def read_env_file(path: str) -> Dict[str, str]:
    """Parse simple ``KEY=value`` dotenv files, unquoting double-quoted values."""
    values: Dict[str, str] = {}
    if not os.path.isfile(path):
        return values

    with open(path, "r", encoding="utf-8") as file_obj:
        for line in file_obj:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, raw = line.partition("=")
            raw = raw.strip()
            if len(raw) >= 2 and raw[0] == raw[-1] == '"':
                raw = raw[1:-1].replace('\\"', '"').replace("\\$", "$").replace("\\\\", "\\")
            elif len(raw) >= 2 and raw[0] == raw[-1] == "'":
                raw = raw[1:-1]
            values[key.strip()] = raw
    return values


def database_url(config: InstallationConfig) -> str:
    user = quote(config.db_user, safe="")
    password = quote(config.db_password, safe="")
    return (
        f"mysql://{user}:{password}@{config.db_host}:{config.db_port}/{config.db_name}"
        "?serverVersion=8.0&charset=utf8mb4"
    )


def cors_origin_pattern(domain: str) -> str:
    escaped = domain.replace(".", "\\.")
    return f"^https?://(www\\.)?{escaped}(:[0-9]+)?$"


class EnvironmentService:
    """Renders ``backend/.env`` and ``frontend/.env.production`` from the confirmed settings.

    Secrets already present in a previous installation are kept so that
    sessions and the JWT key pair stay valid across updates.
    """

    BACKEND_TEMPLATE = "backend.env.j2"
    FRONTEND_TEMPLATE = "frontend.env.j2"

    def __init__(self, renderer, filesystem_service, logger):
        self.renderer = renderer
        self.filesystem_service = filesystem_service
        self.logger = logger

    def backend_context(self, config: InstallationConfig, paths: InstallPaths) -> Dict[str, object]:
        existing = read_env_file(os.path.join(paths.backend_dir, ".env"))
        return {
            "app_name": config.app_name,
            "app_secret": existing.get("APP_SECRET") or secrets.token_hex(32),
            "jwt_passphrase": existing.get("JWT_PASSPHRASE") or secrets.token_urlsafe(32),
            "base_path": config.base_path,
            "database_url": database_url(config),
            "frontend_url": config.frontend_url,
            "backend_url": config.backend_url,
            "cors_allow_origin": cors_origin_pattern(config.domain),
            "mail_from_address": config.mail_from_address or config.admin_email,
            "messenger_transport_dsn": config.messenger_transport_dsn,
            "unsplash_api_key": config.unsplash_api_key,
            "pexels_api_key": config.pexels_api_key,
            "iconfinder_api_key": config.iconfinder_api_key,
        }

    def frontend_context(self, config: InstallationConfig) -> Dict[str, object]:
        return {
            "app_name": config.app_name,
            "public_base_path": config.public_base_path,
            "api_url": f"{config.base_path}/api",
        }

    def render_backend(self, config: InstallationConfig, paths: InstallPaths) -> str:
        return self.renderer.render_template(self.BACKEND_TEMPLATE, **self.backend_context(config, paths))

    def render_frontend(self, config: InstallationConfig) -> str:
        return self.renderer.render_template(self.FRONTEND_TEMPLATE, **self.frontend_context(config))

    def configure(self, config: InstallationConfig, paths: InstallPaths):
        backend_env = os.path.join(paths.backend_source_dir, ".env")
        frontend_env = os.path.join(paths.frontend_source_dir, FRONTEND_ENV_FILE)
        self.filesystem_service.write_file(backend_env, self.render_backend(config, paths), mode=SECRET_FILE_MODE)
        self.filesystem_service.write_file(frontend_env, self.render_frontend(config))
        self.logger.info("Environment files written for base path %r", config.public_base_path)
