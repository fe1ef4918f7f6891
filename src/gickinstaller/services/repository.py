"""Fetches the application and shapes repositories."""

import os

from gickinstaller.constants import (
    CLONE_TIMEOUT,
    REPO_URL,
    REQUIRED_REPOSITORY_PATHS,
    SHAPES_BRANCH,
    SHAPES_REPO_URL,
)
from gickinstaller.errors import InstallerError
from gickinstaller.errors_catalog import actionable_error
from gickinstaller.models import InstallPaths


class RepositoryService:
    def __init__(self, run_cmd, filesystem_service, logger, console, repo_url: str = REPO_URL):
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.repo_url = repo_url

    def clone_all(self, paths: InstallPaths):
        self.clone_application(paths.source_dir)
        self.clone_shapes(paths.shapes_dir)
        self.verify(paths.source_dir)
        self.console.print("[green]Repositories ready.[/green]")

    def clone_application(self, destination: str):
        self.filesystem_service.cleanup_dir(destination)
        self.console.print(f"[blue]Cloning {self.repo_url}...[/blue]")
        self.run_cmd(
            ["git", "clone", "--depth", "1", self.repo_url, destination],
            capture_output=True,
            timeout=CLONE_TIMEOUT,
            retry_count=1,
            retry_backoff_seconds=5.0,
        )
        self.logger.info("Application repository cloned to %s", destination)

    def clone_shapes(self, destination: str) -> bool:
        self.filesystem_service.cleanup_dir(destination)
        try:
            self.run_cmd(
                ["git", "clone", "--depth", "1", "--branch", SHAPES_BRANCH, SHAPES_REPO_URL, destination],
                capture_output=True,
                timeout=CLONE_TIMEOUT,
            )
        except InstallerError as exc:
            self.logger.warning("Shapes repository unavailable; shapes import will be skipped: %s", exc)
            self.console.print("[yellow]Shapes repository unavailable; shapes import will be skipped.[/yellow]")
            return False
        self.logger.info("Shapes repository cloned to %s", destination)
        return True

    def verify(self, source_dir: str):
        for relative in REQUIRED_REPOSITORY_PATHS:
            if not os.path.exists(os.path.join(source_dir, relative)):
                raise InstallerError(actionable_error("repository_incomplete", path=relative))
