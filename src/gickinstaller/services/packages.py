"""Distribution package manager abstraction (apt, dnf, yum)."""

import shutil
from typing import Iterable, List, Optional

from gickinstaller.constants import PACKAGE_TIMEOUT
from gickinstaller.errors import InstallerError


class PackageManagerService:
    """Installs distribution packages, separating required from optional ones."""

    SUPPORTED = ("apt", "dnf", "yum")

    def __init__(self, run_cmd, logger, console, which=shutil.which):
        self.run_cmd = run_cmd
        self.logger = logger
        self.console = console
        self.which = which
        self._manager: Optional[str] = None

    @property
    def manager(self) -> str:
        if self._manager is None:
            self._manager = self.detect()
        return self._manager

    @property
    def is_debian_family(self) -> bool:
        return self.manager == "apt"

    def detect(self) -> str:
        for name, binary in (("apt", "apt-get"), ("dnf", "dnf"), ("yum", "yum")):
            if self.which(binary):
                self.logger.info("Detected package manager: %s", name)
                return name
        raise InstallerError("Unsupported package manager. apt-get, dnf or yum is required.")

    def _install_cmd(self, packages: List[str]) -> List[str]:
        if self.manager == "apt":
            return ["apt-get", "install", "-y", "--no-install-recommends", *packages]
        return [self.manager, "install", "-y", *packages]

    def _env(self):
        if self.manager == "apt":
            return {"DEBIAN_FRONTEND": "noninteractive"}
        return None

    def update_index(self):
        if self.manager == "apt":
            cmd = ["apt-get", "update"]
        else:
            cmd = [self.manager, "makecache", "-y"]
        self.run_cmd(
            cmd,
            capture_output=True,
            timeout=PACKAGE_TIMEOUT,
            env=self._env(),
            retry_count=2,
            retry_backoff_seconds=5.0,
        )

    def is_available(self, package: str) -> bool:
        if self.manager == "apt":
            cmd = ["apt-cache", "show", package]
        else:
            cmd = [self.manager, "list", package]
        result = self.run_cmd(cmd, check=False, capture_output=True)
        return result.returncode == 0

    def is_installed(self, package: str) -> bool:
        if self.manager == "apt":
            cmd = ["dpkg", "-s", package]
        else:
            cmd = ["rpm", "-q", package]
        result = self.run_cmd(cmd, check=False, capture_output=True)
        return result.returncode == 0

    def install(self, packages: Iterable[str], optional: bool = False) -> List[str]:
        """Install ``packages``; return the names that could not be installed.

        Required packages are installed in one transaction and any failure is
        fatal. Optional packages are tried one by one and only warn.
        """
        names = list(packages)
        if not names:
            return []

        if not optional:
            self.run_cmd(self._install_cmd(names), capture_output=True, timeout=PACKAGE_TIMEOUT, env=self._env())
            self.logger.info("Installed: %s", ", ".join(names))
            return []

        missing = []
        for package in names:
            if not self.is_available(package):
                self.logger.info("Optional package not available: %s", package)
                missing.append(package)
                continue
            result = self.run_cmd(
                self._install_cmd([package]),
                check=False,
                capture_output=True,
                timeout=PACKAGE_TIMEOUT,
                env=self._env(),
            )
            if result.returncode != 0:
                self.logger.warning("Failed to install optional package %s:\n%s", package, (result.stderr or "").strip())
                missing.append(package)
        if missing:
            self.console.print(f"[yellow]Optional packages skipped: {', '.join(missing)}[/yellow]")
        return missing
