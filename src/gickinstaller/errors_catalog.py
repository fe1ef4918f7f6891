"""Actionable error catalog for gickinstaller."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "not_root": {
        "what": "The installer must be run as root.",
        "next": "Re-run the command with `sudo`.",
    },
    "unsupported_os": {
        "what": "Unsupported operating system: {os_id} {version}.",
        "next": "Use Ubuntu 20.04+ or Debian 11+.",
    },
    "missing_required_value": {
        "what": "Missing required setting `{field}`.",
        "next": "Provide it in the answers file (`--config`) or run without `--unattended`.",
    },
    "database_unreachable": {
        "what": "Cannot connect to MySQL at {host}:{port} as `{user}`.",
        "next": "Check that MySQL is running and that the credentials are correct.",
    },
    "existing_installation": {
        "what": "An installation already exists at {path}.",
        "next": "Confirm the in-place update interactively or pass `--force-reinstall`.",
    },
    "phase_record_mismatch": {
        "what": "The phase record at {path} belongs to another install directory ({other}).",
        "next": "Run with `--force-reinstall` or `--clear-cache` to start over.",
    },
    "missing_cached_config": {
        "what": "Phase `user_input` is marked complete but no cached configuration was found.",
        "next": "Run with `--force-reinstall` to collect the configuration again.",
    },
    "nginx_invalid": {
        "what": "nginx rejected the generated site configuration.",
        "next": "Inspect the validation output above; the previous configuration was kept.",
    },
    "repository_incomplete": {
        "what": "The cloned application repository is missing `{path}`.",
        "next": "Check the repository URL and branch, then re-run the installer.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
