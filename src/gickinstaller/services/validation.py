"""Input validation helpers for gickinstaller."""

import re
from typing import Dict, Optional

import requests
from packaging import version

from gickinstaller.constants import (
    CONNECTIVITY_TIMEOUT,
    EXPERIMENTAL_OS_IDS,
    MIN_PASSWORD_LENGTH,
    SUPPORTED_OS_VERSIONS,
)
from gickinstaller.errors import InstallerError, ValidationError
from gickinstaller.errors_catalog import actionable_error

DOMAIN_LABEL_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
BASE_PATH_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._~-]+$")
IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]{1,64}$")
NODE_VERSION_RE = re.compile(r"^\d{2}$")


def normalize_base_path(raw: Optional[str]) -> str:
    """Return the canonical form of a URL base path.

    The result is either ``""`` (root install) or a path with exactly one
    leading slash and no trailing slash, e.g. ``"/design-tool"``. Both the
    nginx renderer and the frontend build consume this value.
    """
    value = (raw or "").strip()
    segments = [segment for segment in value.split("/") if segment]
    if not segments:
        return ""

    for segment in segments:
        if segment in (".", ".."):
            raise ValidationError(f"Base path must not contain '{segment}' segments: {raw!r}")
        if not BASE_PATH_SEGMENT_RE.match(segment):
            raise ValidationError(
                f"Base path {raw!r} contains unsupported characters. "
                "Use letters, digits, '.', '_', '~' and '-' separated by '/'."
            )

    return "/" + "/".join(segments)


def validate_domain(raw: Optional[str]) -> str:
    value = (raw or "").strip().lower().rstrip(".")
    if value.startswith(("http://", "https://")):
        raise ValidationError("Enter the domain without a scheme (example.com, not https://example.com).")
    if not value or len(value) > 253:
        raise ValidationError("Domain name must not be empty.")
    if value != "localhost" and "." not in value:
        raise ValidationError(f"Domain name {raw!r} must contain at least one dot.")
    if not all(DOMAIN_LABEL_RE.match(label) for label in value.split(".")):
        raise ValidationError(f"Invalid domain name: {raw!r}")
    return value


def validate_email(raw: Optional[str]) -> str:
    value = (raw or "").strip()
    if not EMAIL_RE.match(value):
        raise ValidationError(f"Invalid email address: {raw!r}")
    return value


def validate_password(raw: Optional[str], label: str = "Password") -> str:
    value = raw or ""
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"{label} must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return value


def validate_identifier(raw: Optional[str], label: str) -> str:
    value = (raw or "").strip()
    if not IDENTIFIER_RE.match(value):
        raise ValidationError(
            f"{label} {raw!r} is invalid. Use up to 64 letters, digits or underscores."
        )
    return value


def validate_port(raw) -> int:
    try:
        port = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid port: {raw!r}") from exc
    if not 1 <= port <= 65535:
        raise ValidationError(f"Port out of range: {port}")
    return port


def validate_node_version(raw) -> str:
    value = str(raw or "").strip().lstrip("v")
    if not NODE_VERSION_RE.match(value):
        raise ValidationError(f"Node.js version must be a major version number such as 21: {raw!r}")
    return value


def require(value, field: str):
    """Fail fast when a required setting is still empty."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InstallerError(actionable_error("missing_required_value", field=field))
    return value


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw_value = line.partition("=")
        values[key.strip()] = raw_value.strip().strip('"').strip("'")
    return values


class ValidationService:
    """Validates the host platform and remote reachability."""

    def __init__(self, requests_module=requests):
        self.requests = requests_module

    def check_os_support(self, os_release: Dict[str, str], logger, console) -> str:
        """Return the OS id when supported; warn on experimental families."""
        os_id = os_release.get("ID", "").lower()
        os_version = os_release.get("VERSION_ID", "")

        if os_id in SUPPORTED_OS_VERSIONS:
            minimum = SUPPORTED_OS_VERSIONS[os_id]
            try:
                supported = version.parse(os_version) >= version.parse(minimum)
            except version.InvalidVersion:
                supported = False
            if not supported:
                raise InstallerError(
                    actionable_error("unsupported_os", os_id=os_id, version=os_version or "?")
                )
            return os_id

        if os_id in EXPERIMENTAL_OS_IDS:
            logger.warning("Support for %s %s is experimental.", os_id, os_version)
            console.print(
                f"[yellow]Warning:[/yellow] {os_id} {os_version} support is experimental."
            )
            return os_id

        raise InstallerError(
            actionable_error("unsupported_os", os_id=os_id or "unknown", version=os_version or "?")
        )

    def is_reachable(self, url: str, logger, timeout: float = CONNECTIVITY_TIMEOUT) -> bool:
        try:
            response = self.requests.head(url, allow_redirects=True, timeout=timeout)
            response.close()
        except self.requests.RequestException as exc:
            logger.debug("Connectivity check to %s failed: %s", url, exc)
            return False
        return response.status_code < 500
