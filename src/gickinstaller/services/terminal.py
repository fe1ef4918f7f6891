"""Interactive prompts bound to the controlling terminal."""

from typing import Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from gickinstaller.errors import InstallerError

TTY_PATH = "/dev/tty"


class TerminalPrompter:
    """Asks questions on the controlling terminal instead of stdin.

    The installer is commonly started as ``curl ... | sudo bash``-style
    pipelines where stdin carries the script itself, so answers are read
    from ``/dev/tty``.
    """

    def __init__(self, tty_path: str = TTY_PATH):
        self.tty_path = tty_path
        self._stream = None
        self._console: Optional[Console] = None

    def _open(self):
        if self._stream is None:
            try:
                self._stream = open(self.tty_path, "r+", encoding="utf-8")
            except OSError as exc:
                raise InstallerError(
                    f"No interactive terminal available ({exc}). "
                    "Run with --unattended and an answers file (--config)."
                ) from exc
            self._console = Console(file=self._stream)
        return self._stream, self._console

    def ask(self, label: str, default: Optional[str] = None, password: bool = False) -> str:
        stream, console = self._open()
        answer = Prompt.ask(
            label,
            console=console,
            password=password,
            default=default if default is not None else ...,
            show_default=not password,
            stream=stream,
        )
        return (answer or "").strip() if not password else (answer or "")

    def confirm(self, label: str, default: bool = False) -> bool:
        stream, console = self._open()
        return Confirm.ask(label, console=console, default=default, stream=stream)

    def close(self):
        if self._stream is not None:
            self._stream.close()
            self._stream = None
            self._console = None
