"""Installs a rendered site into nginx and reloads it safely."""

import os
import shutil
from typing import Optional

from gickinstaller.constants import FILE_MODE
from gickinstaller.errors import CommandFailedError, InstallerError
from gickinstaller.errors_catalog import actionable_error
from gickinstaller.models import RenderedServerConfig


class NginxService:
    """Writes, enables, validates and reloads an nginx site.

    The running configuration is only reloaded after ``nginx -t`` accepts
    the new site. On a failed check the previous site file and link are put
    back exactly as they were.
    """

    DEFAULT_SITE = "default"

    def __init__(self, run_cmd, filesystem_service, logger, console, available_dir: str, enabled_dir: str):
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.available_dir = available_dir
        self.enabled_dir = enabled_dir

    def site_path(self, site_name: str) -> str:
        return os.path.join(self.available_dir, site_name)

    def link_path(self, site_name: str) -> str:
        return os.path.join(self.enabled_dir, site_name)

    def apply(self, rendered: RenderedServerConfig):
        site_path = self.site_path(rendered.site_name)
        link_path = self.link_path(rendered.site_name)
        backup_path = f"{site_path}.gick-backup"

        had_site = os.path.exists(site_path)
        previous_link: Optional[str] = os.readlink(link_path) if os.path.islink(link_path) else None
        if had_site:
            shutil.copy2(site_path, backup_path)

        try:
            self.filesystem_service.write_file(site_path, rendered.text, mode=FILE_MODE)
            self._link(site_path, link_path)
            result = self.run_cmd(["nginx", "-t"], check=False, capture_output=True)
            if result.returncode != 0:
                output = (result.stderr or result.stdout or "").strip()
                self._restore(site_path, link_path, backup_path, had_site, previous_link)
                raise InstallerError(f"{actionable_error('nginx_invalid')}\n{output}")
        finally:
            if os.path.exists(backup_path):
                os.remove(backup_path)

        self.disable_default_site()
        self.reload()
        self.logger.info("nginx %s site installed at %s", rendered.shape, site_path)
        self.console.print(f"[green]nginx configured ({rendered.shape} form).[/green]")

    def _link(self, site_path: str, link_path: str):
        os.makedirs(self.enabled_dir, exist_ok=True)
        if os.path.islink(link_path) or os.path.exists(link_path):
            os.remove(link_path)
        os.symlink(site_path, link_path)

    def _restore(
        self,
        site_path: str,
        link_path: str,
        backup_path: str,
        had_site: bool,
        previous_link: Optional[str],
    ):
        if had_site:
            shutil.copy2(backup_path, site_path)
        elif os.path.exists(site_path):
            os.remove(site_path)

        if os.path.islink(link_path) or os.path.exists(link_path):
            os.remove(link_path)
        if previous_link is not None:
            os.symlink(previous_link, link_path)
        self.logger.warning("Restored previous nginx site configuration.")

    def disable_default_site(self):
        default_link = self.link_path(self.DEFAULT_SITE)
        if os.path.islink(default_link):
            os.remove(default_link)
            self.logger.info("Disabled the default nginx site.")

    def reload(self):
        try:
            self.run_cmd(["systemctl", "reload", "nginx"], capture_output=True)
        except CommandFailedError as exc:
            self.logger.warning("nginx reload failed, restarting instead: %s", exc)
            self.run_cmd(["systemctl", "restart", "nginx"], capture_output=True)
