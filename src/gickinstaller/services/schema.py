"""Symfony console wrapper for Doctrine schema operations."""

import contextlib
import glob
import os
import subprocess
from typing import Dict, Iterator, List, Optional

from gickinstaller.constants import NEUTRAL_MESSENGER_DSN, SCHEMA_TIMEOUT

TRANSPORT_ENV = "MESSENGER_TRANSPORT_DSN"


class SchemaToolService:
    """Runs ``bin/console`` commands inside the deployed backend."""

    def __init__(self, run_cmd, logger, backend_dir: str, php_binary: str = "php"):
        self.run_cmd = run_cmd
        self.logger = logger
        self.backend_dir = backend_dir
        self.php_binary = php_binary
        self.env_overrides: Dict[str, str] = {"APP_ENV": "prod"}
        self._commands: Optional[List[str]] = None

    @contextlib.contextmanager
    def neutral_transport(self) -> Iterator[None]:
        """Point the message transport at ``sync://`` for the enclosed calls."""
        previous = self.env_overrides.get(TRANSPORT_ENV)
        self.env_overrides[TRANSPORT_ENV] = NEUTRAL_MESSENGER_DSN
        self.logger.debug("Message transport neutralized for schema operations.")
        try:
            yield
        finally:
            if previous is None:
                self.env_overrides.pop(TRANSPORT_ENV, None)
            else:
                self.env_overrides[TRANSPORT_ENV] = previous
            self.logger.debug("Message transport restored.")

    def console(
        self,
        args: List[str],
        check: bool = True,
        timeout: float = SCHEMA_TIMEOUT,
    ) -> subprocess.CompletedProcess:
        return self.run_cmd(
            [self.php_binary, "bin/console", *args, "--no-interaction"],
            check=check,
            capture_output=True,
            timeout=timeout,
            cwd=self.backend_dir,
            env=dict(self.env_overrides),
        )

    def available_commands(self) -> List[str]:
        if self._commands is None:
            result = self.console(["list", "--raw"], check=False)
            names = []
            if result.returncode == 0:
                for line in (result.stdout or "").splitlines():
                    parts = line.split()
                    if parts:
                        names.append(parts[0])
            self._commands = names
        return self._commands

    def has_command(self, name: str) -> bool:
        return name in self.available_commands()

    def has_migrations(self) -> bool:
        return bool(glob.glob(os.path.join(self.backend_dir, "migrations", "*.php")))

    def migrate(self):
        self.console(["doctrine:migrations:migrate", "--allow-no-migration"])

    def update_schema(self):
        self.console(["doctrine:schema:update", "--force"])

    def recreate_schema(self):
        self.console(["doctrine:schema:drop", "--force", "--full-database"])
        self.console(["doctrine:schema:create"])

    def validate_schema(self) -> bool:
        result = self.console(["doctrine:schema:validate", "--skip-mapping"], check=False)
        return result.returncode == 0

    def load_fixtures(self):
        self.console(["doctrine:fixtures:load"])

    def clear_cache(self):
        self.console(["cache:clear"], check=False)
        self.console(["cache:warmup"], check=False)
