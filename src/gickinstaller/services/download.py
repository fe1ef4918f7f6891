"""Download service with progress reporting and checksum validation."""

import hashlib
import os
from typing import Optional
from urllib.parse import urlparse

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from gickinstaller.errors import InstallerError


class DownloadService:
    """Fetches installer inputs (archives, bootstrap scripts) over HTTPS."""

    def __init__(self, logger, console, requests_module, timeout: float = 60.0):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout

    def download_file(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading...",
        expected_sha256: Optional[str] = None,
    ):
        if urlparse(url).scheme.lower() != "https":
            raise InstallerError(f"Refusing to download {description} over an insecure URL: {url}")

        self.logger.info("Downloading %s to %s", url, dest_path)
        hasher = hashlib.sha256() if expected_sha256 else None

        try:
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    DownloadColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                    transient=True,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=65536):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            if hasher:
                                hasher.update(chunk)
                            progress.update(task, advance=len(chunk))
        except self.requests.RequestException as exc:
            raise InstallerError(f"Download failed for {description}: {exc}") from exc

        if hasher:
            downloaded_sha = hasher.hexdigest()
            if downloaded_sha != expected_sha256:
                try:
                    os.remove(dest_path)
                except OSError:
                    pass
                raise InstallerError(
                    f"Checksum mismatch for {description}. Expected {expected_sha256}, "
                    f"but got {downloaded_sha}."
                )

    def fetch_text(self, url: str, description: str) -> str:
        try:
            response = self.requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            raise InstallerError(f"Could not fetch {description}: {exc}") from exc
        return response.text
