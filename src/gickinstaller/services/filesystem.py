"""Filesystem helpers for gickinstaller."""

import fnmatch
import logging
import os
import shutil
import tempfile
from typing import Iterable, Optional

from rich.console import Console

from gickinstaller.constants import DIR_MODE, FILE_MODE
from gickinstaller.errors import InstallerError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def ensure_dir(self, path: str, mode: int = DIR_MODE):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise InstallerError(f"Could not create directory {path}: {exc}") from exc
        self.set_permissions(path, mode)

    def write_file(self, path: str, content: str, mode: int = FILE_MODE):
        """Atomically replace ``path`` with ``content`` and apply ``mode``."""
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=".gick-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                file_obj.write(content)
            os.chmod(temp_path, mode)
            os.replace(temp_path, path)
        except OSError as exc:
            raise InstallerError(f"Could not write {path}: {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
        self.logger.debug("Wrote %s (mode %o)", path, mode)

    def set_permissions(self, path: str, mode: int):
        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def set_tree_permissions(self, root: str, dir_mode: int, file_mode: int, script_mode: int):
        if not os.path.exists(root):
            return

        for current_root, dirs, files in os.walk(root):
            for directory in dirs:
                self.set_permissions(os.path.join(current_root, directory), dir_mode)
            for file_name in files:
                mode = script_mode if file_name.endswith(".sh") else file_mode
                self.set_permissions(os.path.join(current_root, file_name), mode)

    def chown_tree(self, root: str, user: str, group: Optional[str] = None):
        group = group or user
        if not os.path.exists(root):
            return

        try:
            shutil.chown(root, user=user, group=group)
            for current_root, dirs, files in os.walk(root):
                for name in dirs + files:
                    path = os.path.join(current_root, name)
                    if not os.path.islink(path):
                        shutil.chown(path, user=user, group=group)
        except (LookupError, OSError) as exc:
            self.logger.warning("Could not change ownership of %s to %s: %s", root, user, exc)

    def copy_tree(self, source: str, destination: str, exclude: Iterable[str] = ()):
        """Copy ``source`` into ``destination``, skipping names matching ``exclude``."""
        patterns = tuple(exclude)

        def _ignore(_directory, names):
            return {
                name
                for name in names
                if any(fnmatch.fnmatch(name, pattern) for pattern in patterns)
            }

        try:
            shutil.copytree(source, destination, ignore=_ignore, dirs_exist_ok=True, symlinks=True)
        except (OSError, shutil.Error) as exc:
            raise InstallerError(f"Failed to copy {source} to {destination}: {exc}") from exc

    def replace_tree(self, source: str, destination: str):
        self.cleanup_dir(destination)
        self.copy_tree(source, destination)

    def cleanup_dir(self, path: str):
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)
