"""Initial content import: vector shapes and design templates."""

import os
from typing import Dict, Optional

from gickinstaller.constants import (
    CONTENT_UPDATE_SCRIPT,
    NPM_INSTALL_TIMEOUT,
    SCRIPT_MODE,
    SHAPES_BRANCH,
    SHAPES_REPO_URL,
    TEMPLATE_IMPORT_TIMEOUT,
    WEB_USER,
    WRITABLE_DIR_MODE,
)
from gickinstaller.errors import CommandTimeoutError, InstallerError
from gickinstaller.models import DatabaseAdminCredential, InstallationConfig, InstallPaths
from gickinstaller.services.environment import database_url

TEMPLATE_IMPORTER = "advanced-template-importer.js"
TEMPLATE_IMPORT_LIMIT = 50


class ContentImportService:
    """Imports bundled content. Every step here is best effort.

    A failed import leaves the application usable with an empty library,
    so problems are reported as warnings and the phase still completes.
    """

    def __init__(self, run_cmd, schema_tool, database_service, renderer, filesystem_service, logger, console):
        self.run_cmd = run_cmd
        self.schema_tool = schema_tool
        self.database_service = database_service
        self.renderer = renderer
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console

    def run(self, config: InstallationConfig, paths: InstallPaths) -> Dict[str, Optional[int]]:
        self.import_shapes(paths)
        self.import_templates(config, paths)
        self.install_update_script(config, paths)

        if self.schema_tool.has_command("app:media:optimize"):
            self.schema_tool.console(["app:media:optimize"], check=False)
        self.schema_tool.clear_cache()

        counts = self.counts(config)
        for table, count in counts.items():
            label = "unknown" if count is None else str(count)
            self.logger.info("%s imported: %s", table.capitalize(), label)
            self.console.print(f"[green]{table.capitalize()}: {label}[/green]")
        return counts

    def _warn(self, message: str):
        self.logger.warning(message)
        self.console.print(f"[yellow]Warning: {message}[/yellow]")

    def import_shapes(self, paths: InstallPaths) -> bool:
        if not os.path.isdir(paths.shapes_dir):
            self._warn("Shapes repository not available; skipping shapes import.")
            return False

        target = os.path.join(paths.backend_dir, "storage", "shapes")
        self.filesystem_service.ensure_dir(target, WRITABLE_DIR_MODE)
        self.filesystem_service.copy_tree(paths.shapes_dir, target, exclude=(".git",))
        self.filesystem_service.chown_tree(target, WEB_USER)

        result = self.schema_tool.console(["app:shapes:import", "--force"], check=False)
        if result.returncode != 0:
            self._warn("Shapes import failed; shapes can be imported later with the content update script.")
            return False
        return True

    def import_templates(self, config: InstallationConfig, paths: InstallPaths) -> bool:
        scripts_dir = paths.scripts_source_dir
        importer = os.path.join(scripts_dir, TEMPLATE_IMPORTER)
        if not os.path.isfile(importer):
            self._warn(f"Template importer not found at {importer}; skipping template import.")
            return False

        if os.path.isfile(os.path.join(scripts_dir, "package.json")) and not os.path.isdir(
            os.path.join(scripts_dir, "node_modules")
        ):
            try:
                self.run_cmd(["npm", "install"], cwd=scripts_dir, capture_output=True, timeout=NPM_INSTALL_TIMEOUT)
            except InstallerError as exc:
                self._warn(f"Template importer dependencies failed to install: {exc}")
                return False

        self.console.print("[blue]Importing design templates (this may take several minutes)...[/blue]")
        try:
            result = self.run_cmd(
                [
                    "node",
                    TEMPLATE_IMPORTER,
                    "--limit",
                    str(TEMPLATE_IMPORT_LIMIT),
                    "--force",
                    f"--backend-dir={paths.backend_dir}",
                ],
                cwd=scripts_dir,
                check=False,
                capture_output=True,
                timeout=TEMPLATE_IMPORT_TIMEOUT,
                env={"DATABASE_URL": database_url(config), "BACKEND_DIR": paths.backend_dir},
            )
        except CommandTimeoutError:
            self._warn("Template import timed out; it may have partially completed.")
            return False
        except InstallerError as exc:
            self._warn(f"Template import could not run: {exc}")
            return False

        if result.returncode != 0:
            self._warn(f"Template import exited with code {result.returncode}.")
            return False
        return True

    def counts(self, config: InstallationConfig) -> Dict[str, Optional[int]]:
        credential = DatabaseAdminCredential(user=config.db_user, password=config.db_password, is_superuser=False)
        return {
            table: self.database_service.count_rows(credential, config.db_name, table)
            for table in ("shapes", "templates")
        }

    def install_update_script(
        self,
        config: InstallationConfig,
        paths: InstallPaths,
        script_path: str = CONTENT_UPDATE_SCRIPT,
    ):
        script = self.renderer.render_template(
            "update-content.sh.j2",
            app_name=config.app_name,
            shapes_branch=SHAPES_BRANCH,
            shapes_repo_url=SHAPES_REPO_URL,
            shapes_target=os.path.join(paths.backend_dir, "storage", "shapes"),
            web_user=WEB_USER,
            backend_dir=paths.backend_dir,
        )
        self.filesystem_service.write_file(script_path, script, mode=SCRIPT_MODE)
