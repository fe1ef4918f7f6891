"""Installer self-update against the upstream repository."""

import os
import sys
from typing import Callable, List, Optional

from gickinstaller.constants import CONNECTIVITY_URL, INSTALLER_ARCHIVE_URL, INSTALLER_REPO_URL
from gickinstaller.errors import InstallerError

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
SKIP_FLAG = "--skip-update-check"


class SelfUpdateService:
    """Keeps the installer current. Never fatal: any problem means "carry on".

    The local revision comes from the installer's git checkout when there is
    one, otherwise from the revision recorded after the last self-update.
    """

    def __init__(
        self,
        run_cmd,
        download_service,
        archive_service,
        validation_service,
        filesystem_service,
        logger,
        console,
        temp_dir: str,
        revision_file: str,
        package_dir: str = PACKAGE_DIR,
        exec_fn: Callable[[str, List[str]], None] = os.execv,
    ):
        self.run_cmd = run_cmd
        self.download_service = download_service
        self.archive_service = archive_service
        self.validation_service = validation_service
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.temp_dir = temp_dir
        self.revision_file = revision_file
        self.package_dir = package_dir
        self.exec_fn = exec_fn

    def local_revision(self) -> Optional[str]:
        result = self.run_cmd(
            ["git", "-C", self.package_dir, "rev-parse", "HEAD"],
            check=False,
            capture_output=True,
        )
        if result.returncode == 0 and (result.stdout or "").strip():
            return result.stdout.strip()
        try:
            with open(self.revision_file, "r", encoding="utf-8") as file_obj:
                return file_obj.read().strip() or None
        except OSError:
            return None

    def remote_revision(self) -> Optional[str]:
        result = self.run_cmd(
            ["git", "ls-remote", INSTALLER_REPO_URL, "HEAD"],
            check=False,
            capture_output=True,
            timeout=30,
        )
        if result.returncode != 0:
            return None
        parts = (result.stdout or "").split()
        return parts[0] if parts else None

    def check_and_update(self, argv: List[str], prompter=None, force: bool = False, unattended: bool = False) -> bool:
        """Return True when an update was installed (the process is then replaced)."""
        try:
            return self._check_and_update(argv, prompter, force, unattended)
        except (InstallerError, OSError) as exc:
            self.logger.warning("Installer update check failed: %s", exc)
            self.console.print("[yellow]Could not update the installer; continuing with the current version.[/yellow]")
            return False

    def _check_and_update(self, argv: List[str], prompter, force: bool, unattended: bool) -> bool:
        if not self.validation_service.is_reachable(CONNECTIVITY_URL, self.logger):
            self.console.print("[yellow]GitHub unreachable; skipping the installer update check.[/yellow]")
            return False

        remote = self.remote_revision()
        local = self.local_revision()
        if remote is None:
            self.logger.warning("Could not read the upstream installer revision.")
            return False
        if remote == local and not force:
            self.logger.info("Installer is up to date (%s).", remote[:12])
            return False

        if not force:
            if unattended or prompter is None:
                self.console.print("[yellow]A newer installer is available; run with --update-installer to use it.[/yellow]")
                return False
            if not prompter.confirm("A newer installer is available. Update now?", default=True):
                return False

        self.install_update(remote)
        self.restart(argv)
        return True

    def install_update(self, revision: str):
        work_dir = os.path.join(self.temp_dir, "installer-update")
        self.filesystem_service.cleanup_dir(work_dir)
        archive = os.path.join(work_dir, "installer.zip")
        self.download_service.download_file(INSTALLER_ARCHIVE_URL, archive, "Installer update")
        extracted = os.path.join(work_dir, "src")
        self.archive_service.safe_extract_zip(archive, extracted)

        roots = [entry for entry in os.listdir(extracted) if os.path.isdir(os.path.join(extracted, entry))]
        if len(roots) != 1:
            raise InstallerError("Unexpected layout in the installer archive.")

        self.run_cmd(
            [sys.executable, "-m", "pip", "install", "--upgrade", os.path.join(extracted, roots[0])],
            capture_output=True,
        )
        self.filesystem_service.write_file(self.revision_file, revision + "\n")
        self.filesystem_service.cleanup_dir(work_dir)
        self.console.print(f"[green]Installer updated to {revision[:12]}.[/green]")

    def restart(self, argv: List[str]):
        args = [arg for arg in argv if arg not in ("--update-installer", SKIP_FLAG)]
        command = [sys.executable, "-m", "gickinstaller", *args, SKIP_FLAG]
        self.logger.info("Restarting installer: %s", " ".join(command))
        self.exec_fn(sys.executable, command)
