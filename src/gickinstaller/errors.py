"""Domain errors for gickinstaller."""


class InstallerError(RuntimeError):
    """Raised when the installation cannot continue safely."""


class ValidationError(InstallerError):
    """Raised when operator-supplied input is rejected."""


class CommandFailedError(InstallerError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, message: str, returncode: int):
        super().__init__(message)
        self.returncode = returncode


class CommandTimeoutError(InstallerError):
    """Raised when an external command exceeds its time budget."""

    def __init__(self, message: str, timeout: float):
        super().__init__(message)
        self.timeout = timeout
