"""Phase record persistence for checkpoint/re-run support."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from gickinstaller.constants import SECRET_FILE_MODE
from gickinstaller.errors import InstallerError
from gickinstaller.errors_catalog import actionable_error
from gickinstaller.models import PhaseRecord


class PhaseStateService:
    """Persists which installation phases already completed for an install dir."""

    SCHEMA_VERSION = 1

    def __init__(self, state_file: str, install_dir: str, logger):
        self.state_file = state_file
        self.install_dir = os.path.abspath(install_dir)
        self.logger = logger

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.state_file):
            return None

        try:
            with open(self.state_file, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise InstallerError(f"Could not read phase record '{self.state_file}': {exc}") from exc

        if not isinstance(data, dict):
            raise InstallerError(f"Phase record '{self.state_file}' has invalid format.")

        return data

    def initialize(self, phases: Tuple[str, ...]) -> PhaseRecord:
        """Return the stored record for this install dir, or a fresh one."""
        data = self.load()
        if data is None:
            record = PhaseRecord(phases=tuple(phases))
            self.save(record)
            return record

        stored_dir = data.get("install_dir")
        if stored_dir != self.install_dir:
            raise InstallerError(
                actionable_error(
                    "phase_record_mismatch",
                    path=self.state_file,
                    other=str(stored_dir),
                )
            )

        completed = [name for name in data.get("completed", []) if name in phases]
        self.logger.debug("Loaded phase record with %s completed phase(s).", len(completed))
        return PhaseRecord(phases=tuple(phases), completed=completed)

    def save(self, record: PhaseRecord):
        directory = os.path.dirname(self.state_file) or "."
        os.makedirs(directory, exist_ok=True)
        payload = {
            "schema_version": self.SCHEMA_VERSION,
            "install_dir": self.install_dir,
            "phases": list(record.phases),
            "completed": list(record.completed),
            "updated_at": self._now(),
        }

        fd, temp_path = tempfile.mkstemp(prefix="phase-state-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(payload, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.chmod(temp_path, SECRET_FILE_MODE)
            os.replace(temp_path, self.state_file)
        except OSError as exc:
            raise InstallerError(f"Could not write phase record '{self.state_file}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def mark_completed(self, record: PhaseRecord, phase: str):
        record.mark_completed(phase)
        self.save(record)

    def discard(self):
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
            self.logger.info("Discarded phase record %s", self.state_file)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
