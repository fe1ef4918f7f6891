"""MySQL administration through the `mysql` command-line client."""

import subprocess
from typing import List, Optional

from gickinstaller.constants import (
    DB_CHARSET,
    DB_COLLATION,
    PERMISSION_PROBE_DATABASE,
    QUERY_TIMEOUT,
)
from gickinstaller.errors import InstallerError
from gickinstaller.errors_catalog import actionable_error
from gickinstaller.models import DatabaseAdminCredential


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def quote_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class DatabaseService:
    """Runs statements against MySQL as a given credential.

    Passwords travel through ``MYSQL_PWD`` so they never show up in the
    process list or in logged command lines.
    """

    APPLICATION_USER_HOSTS = ("localhost", "%")

    def __init__(self, run_cmd, logger, host: str, port: int):
        self.run_cmd = run_cmd
        self.logger = logger
        self.host = host
        self.port = port

    def _command(self, credential: DatabaseAdminCredential, database: Optional[str]) -> List[str]:
        cmd = [
            "mysql",
            "-h",
            self.host,
            "-P",
            str(self.port),
            "-u",
            credential.user,
            "--batch",
            "--skip-column-names",
        ]
        if database:
            cmd.append(database)
        return cmd

    def execute(
        self,
        credential: DatabaseAdminCredential,
        sql: str,
        database: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        return self.run_cmd(
            self._command(credential, database),
            check=check,
            capture_output=True,
            timeout=QUERY_TIMEOUT,
            env={"MYSQL_PWD": credential.password},
            input_text=sql,
        )

    def query_values(
        self,
        credential: DatabaseAdminCredential,
        sql: str,
        database: Optional[str] = None,
    ) -> List[str]:
        result = self.execute(credential, sql, database=database)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def ping(self, credential: DatabaseAdminCredential) -> bool:
        try:
            result = self.execute(credential, "SELECT 1;", check=False)
        except InstallerError as exc:
            self.logger.debug("MySQL ping as %s failed: %s", credential.user, exc)
            return False
        if result.returncode != 0:
            self.logger.debug("MySQL ping as %s failed: %s", credential.user, (result.stderr or "").strip())
        return result.returncode == 0

    def ensure_reachable(self, credential: DatabaseAdminCredential):
        if not self.ping(credential):
            raise InstallerError(
                actionable_error(
                    "database_unreachable",
                    host=self.host,
                    port=str(self.port),
                    user=credential.user,
                )
            )

    def can_create_databases(self, credential: DatabaseAdminCredential) -> bool:
        """Create and drop a throwaway database to probe CREATE privileges."""
        probe = quote_identifier(PERMISSION_PROBE_DATABASE)
        try:
            result = self.execute(
                credential,
                f"CREATE DATABASE IF NOT EXISTS {probe}; DROP DATABASE {probe};",
                check=False,
            )
        except InstallerError as exc:
            self.logger.debug("Permission probe as %s failed: %s", credential.user, exc)
            return False
        return result.returncode == 0

    def database_exists(self, credential: DatabaseAdminCredential, name: str) -> bool:
        values = self.query_values(
            credential,
            "SELECT SCHEMA_NAME FROM information_schema.SCHEMATA "
            f"WHERE SCHEMA_NAME = {quote_literal(name)};",
        )
        return name in values

    def drop_database(self, credential: DatabaseAdminCredential, name: str):
        self.execute(credential, f"DROP DATABASE IF EXISTS {quote_identifier(name)};")

    def create_database(self, credential: DatabaseAdminCredential, name: str):
        self.execute(
            credential,
            f"CREATE DATABASE IF NOT EXISTS {quote_identifier(name)} "
            f"CHARACTER SET {DB_CHARSET} COLLATE {DB_COLLATION};",
        )

    def ensure_user(
        self,
        credential: DatabaseAdminCredential,
        database: str,
        user: str,
        password: str,
    ):
        """Create the application user and grant it the target database only."""
        statements = []
        for host in self.APPLICATION_USER_HOSTS:
            account = f"{quote_literal(user)}@{quote_literal(host)}"
            statements.append(
                f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {quote_literal(password)};"
            )
            statements.append(f"ALTER USER {account} IDENTIFIED BY {quote_literal(password)};")
            statements.append(f"GRANT ALL PRIVILEGES ON {quote_identifier(database)}.* TO {account};")
        statements.append("FLUSH PRIVILEGES;")
        self.execute(credential, "\n".join(statements))

    def table_names(self, credential: DatabaseAdminCredential, database: str) -> List[str]:
        return self.query_values(
            credential,
            "SELECT TABLE_NAME FROM information_schema.TABLES "
            f"WHERE TABLE_SCHEMA = {quote_literal(database)};",
        )

    def count_rows(
        self,
        credential: DatabaseAdminCredential,
        database: str,
        table: str,
    ) -> Optional[int]:
        result = self.execute(
            credential,
            f"SELECT COUNT(*) FROM {quote_identifier(table)};",
            database=database,
            check=False,
        )
        if result.returncode != 0:
            return None
        try:
            return int((result.stdout or "").strip().splitlines()[0])
        except (IndexError, ValueError):
            return None
