"""Template rendering for generated system configuration."""

import re
import shlex
from dataclasses import asdict, dataclass
from typing import Any, Tuple

from jinja2 import Environment, PackageLoader, StrictUndefined

from gickinstaller.constants import (
    BACKEND_ROUTE_FAMILIES,
    CACHED_ROUTE_FAMILIES,
    PHP_FPM_SOCKET,
    SITE_NAME,
)
from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths, RenderedServerConfig

# Characters that would let a value break out of an nginx directive.
NGINX_UNSAFE_RE = re.compile(r"[\s;{}\"'`$\\#]")


def nginx_value(value: Any) -> str:
    text = str(value)
    if not text or NGINX_UNSAFE_RE.search(text):
        raise InstallerError(f"Refusing to write unsafe value into nginx configuration: {text!r}")
    return text


def regex_literal(value: Any) -> str:
    return re.escape(nginx_value(value))


def envquote(value: Any) -> str:
    """Quote a value for a dotenv file read by Symfony or Vite."""
    text = "" if value is None else str(value)
    if "\n" in text or "\r" in text:
        raise InstallerError("Environment values must not contain line breaks.")
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def shquote(value: Any) -> str:
    return shlex.quote(str(value))


def build_environment() -> Environment:
    environment = Environment(
        loader=PackageLoader("gickinstaller", "templates"),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    environment.filters["nginx_value"] = nginx_value
    environment.filters["regex_literal"] = regex_literal
    environment.filters["envquote"] = envquote
    environment.filters["shquote"] = shquote
    return environment


@dataclass(frozen=True)
class ServerBlockParams:
    app_name: str
    domain: str
    webroot: str
    backend_public_dir: str
    base_path: str
    php_fpm_socket: str
    route_families: Tuple[str, ...]
    cached_route_families: Tuple[str, ...]


class ConfigRenderer:
    """Renders the nginx site and the other generated files from templates."""

    ROOT_TEMPLATE = "nginx_root.conf.j2"
    SUBDIRECTORY_TEMPLATE = "nginx_subdir.conf.j2"

    def __init__(self, environment: Environment = None):
        self.environment = environment or build_environment()

    def render_template(self, name: str, **context) -> str:
        return self.environment.get_template(name).render(**context)

    def server_params(self, config: InstallationConfig, paths: InstallPaths) -> ServerBlockParams:
        return ServerBlockParams(
            app_name=config.app_name,
            domain=config.domain,
            webroot=paths.webroot,
            backend_public_dir=paths.backend_public_dir,
            base_path=config.base_path,
            php_fpm_socket=PHP_FPM_SOCKET,
            route_families=BACKEND_ROUTE_FAMILIES,
            cached_route_families=CACHED_ROUTE_FAMILIES,
        )

    def render(self, config: InstallationConfig, paths: InstallPaths) -> RenderedServerConfig:
        params = self.server_params(config, paths)
        if params.base_path:
            shape, template = "subdirectory", self.SUBDIRECTORY_TEMPLATE
        else:
            shape, template = "root", self.ROOT_TEMPLATE
        text = self.render_template(template, **asdict(params))
        return RenderedServerConfig(shape=shape, site_name=SITE_NAME, text=text)
