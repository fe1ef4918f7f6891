"""Frontend build and deployment, gated by the source fingerprint."""

import os
from typing import List

from gickinstaller.constants import (
    DIR_MODE,
    FILE_MODE,
    KEY_FRONTEND_DEPENDENCIES,
    NPM_BUILD_TIMEOUT,
    NPM_INSTALL_TIMEOUT,
    WEB_USER,
)
from gickinstaller.errors import CommandFailedError, CommandTimeoutError, InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths

BUILD_EXCLUDES = ("node_modules", "dist", ".git")
STATIC_PATTERNS = (".js", ".css", ".ico")
OUTPUT_TAIL_LINES = 50


def tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    return "\n".join((text or "").strip().splitlines()[-lines:])


class FrontendSetupService:
    """Builds the Vue application and publishes it under the webroot.

    The build is skipped when the fingerprint of the source tree matches
    the last successful build and the deployed files are still in place.
    The nginx site is rendered and applied on every run so that domain and
    base path changes always reach the server.
    """

    def __init__(
        self,
        run_cmd,
        fingerprint_service,
        renderer,
        nginx_service,
        system_setup_service,
        filesystem_service,
        logger,
        console,
    ):
        self.run_cmd = run_cmd
        self.fingerprints = fingerprint_service
        self.renderer = renderer
        self.nginx = nginx_service
        self.system_setup = system_setup_service
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console

    def setup(self, config: InstallationConfig, paths: InstallPaths) -> bool:
        """Return True when a new build was produced."""
        if not os.path.isdir(paths.frontend_source_dir):
            raise InstallerError(f"Frontend source directory not found: {paths.frontend_source_dir}")

        decision = self.fingerprints.evaluate(
            paths.frontend_source_dir,
            paths.fingerprint_file,
            build_output=os.path.join(paths.webroot, "index.html"),
        )
        self.logger.info("Frontend build decision: rebuild=%s (%s)", decision.rebuild, decision.reason)

        if decision.rebuild:
            self.console.print(f"[blue]Building frontend ({decision.reason})...[/blue]")
            self.system_setup.install_nodejs(config.node_version)
            dist_dir = self.build(paths)
            self.deploy(dist_dir, paths.webroot)
        else:
            self.console.print("[green]Frontend unchanged; reusing the deployed build.[/green]")

        self.validate(paths.webroot)
        self.nginx.apply(self.renderer.render(config, paths))

        if decision.rebuild and decision.fingerprint is not None:
            self.fingerprints.record(decision.fingerprint, paths.fingerprint_file)
        return decision.rebuild

    def build(self, paths: InstallPaths) -> str:
        build_dir = paths.frontend_build_dir
        self.filesystem_service.cleanup_dir(build_dir)
        self.filesystem_service.copy_tree(paths.frontend_source_dir, build_dir, exclude=BUILD_EXCLUDES)
        if not os.path.isfile(os.path.join(build_dir, "package.json")):
            raise InstallerError("package.json not found in the frontend source.")

        self._npm(["npm", "install"], build_dir, NPM_INSTALL_TIMEOUT, "npm install")
        missing = self.missing_dependencies(build_dir)
        if missing:
            self.logger.warning("Key frontend dependencies missing after install: %s", ", ".join(missing))
            self.console.print(f"[yellow]Warning: missing frontend dependencies: {', '.join(missing)}[/yellow]")

        self._npm(["npm", "run", "build"], build_dir, NPM_BUILD_TIMEOUT, "npm run build")
        dist_dir = os.path.join(build_dir, "dist")
        if not os.path.isdir(dist_dir) or not os.listdir(dist_dir):
            raise InstallerError("Frontend build produced no files in dist/.")
        return dist_dir

    def _npm(self, cmd: List[str], cwd: str, timeout: int, label: str):
        try:
            self.run_cmd(cmd, cwd=cwd, capture_output=True, timeout=timeout)
        except CommandTimeoutError as exc:
            raise InstallerError(f"{label} timed out after {timeout // 60} minutes.") from exc
        except CommandFailedError as exc:
            raise InstallerError(
                f"{label} failed (exit code {exc.returncode}). Last output:\n{tail(str(exc))}"
            ) from exc

    @staticmethod
    def missing_dependencies(build_dir: str) -> List[str]:
        modules = os.path.join(build_dir, "node_modules")
        return [name for name in KEY_FRONTEND_DEPENDENCIES if not os.path.isdir(os.path.join(modules, name))]

    def deploy(self, dist_dir: str, webroot: str):
        self.filesystem_service.ensure_dir(webroot)
        self.filesystem_service.cleanup_dir(os.path.join(webroot, "assets"))
        self.filesystem_service.copy_tree(dist_dir, webroot)
        self.filesystem_service.set_tree_permissions(webroot, DIR_MODE, FILE_MODE, FILE_MODE)
        self.filesystem_service.chown_tree(webroot, WEB_USER)
        self.logger.info("Frontend deployed to %s", webroot)

    def validate(self, webroot: str):
        if not os.path.isfile(os.path.join(webroot, "index.html")):
            raise InstallerError(f"Frontend validation failed: index.html not found in {webroot}.")
        if not os.path.isdir(os.path.join(webroot, "assets")):
            self.logger.warning("No assets directory in %s", webroot)
            self.console.print("[yellow]Warning: frontend assets directory not found.[/yellow]")

        found = set()
        for _root, _dirs, files in os.walk(webroot):
            for name in files:
                for ext in STATIC_PATTERNS:
                    if name.endswith(ext):
                        found.add(ext)
        if not found:
            self.logger.warning("No js/css/ico files found in %s", webroot)
