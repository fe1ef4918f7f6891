"""Database provisioning: credentials, database, user, schema and seed data."""

from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig, ProvisionResult, select_admin_credential

FIXTURES_COMMAND = "doctrine:fixtures:load"


class DatabaseProvisioner:
    """Brings the application database to a usable state idempotently.

    Order of operations: pick the administrative identity, check
    connectivity, optionally drop the database, create it, create the
    application user (superuser only), converge the schema and seed a new
    database. Schema work runs with the message transport neutralized.
    """

    def __init__(self, database_service, schema_tool, logger, console):
        self.database_service = database_service
        self.schema_tool = schema_tool
        self.logger = logger
        self.console = console

    def provision(self, config: InstallationConfig, clear_database: bool = False) -> ProvisionResult:
        credential = select_admin_credential(config)
        self.logger.info(
            "Using %s credential `%s` for database administration.",
            "superuser" if credential.is_superuser else "application",
            credential.user,
        )
        self.database_service.ensure_reachable(credential)

        existed = self.database_service.database_exists(credential, config.db_name)
        cleared = False
        if clear_database and existed:
            self.logger.warning("Dropping existing database `%s` (clean reinstall requested).", config.db_name)
            self.console.print(f"[yellow]Dropping existing database {config.db_name}...[/yellow]")
            self.database_service.drop_database(credential, config.db_name)
            existed = False
            cleared = True

        with self.schema_tool.neutral_transport():
            self.database_service.create_database(credential, config.db_name)

            if credential.is_superuser:
                self.database_service.ensure_user(
                    credential,
                    config.db_name,
                    config.db_user,
                    config.db_password,
                )
                self.logger.info("Application user `%s` granted access to `%s`.", config.db_user, config.db_name)
            else:
                self.logger.info(
                    "Skipping user creation: `%s` already holds the privileges it needs.",
                    config.db_user,
                )

            fresh = not existed or not self.database_service.table_names(credential, config.db_name)
            convergence = self.converge_schema()

            seeded = False
            # A recreated schema is as empty as a new database.
            if fresh or cleared or convergence == "schema_recreate":
                seeded = self.seed()
            else:
                self.logger.info("Existing database kept; seed data not loaded.")

        self.console.print(f"[green]Database ready ({convergence.replace('_', ' ')}).[/green]")
        return ProvisionResult(fresh=fresh, cleared=cleared, convergence=convergence, seeded=seeded)

    def converge_schema(self) -> str:
        if self.schema_tool.has_migrations():
            try:
                self.schema_tool.migrate()
                self.logger.info("Schema converged through migrations.")
                return "migrations"
            except InstallerError as exc:
                self.logger.warning("Migrations failed, falling back to schema update: %s", exc)
        else:
            self.logger.warning("No migrations found, falling back to schema update.")

        try:
            self.schema_tool.update_schema()
            self.logger.info("Schema converged through schema update.")
            return "schema_update"
        except InstallerError as exc:
            self.logger.warning(
                "DESTRUCTIVE fallback: schema update failed, dropping and recreating every table: %s",
                exc,
            )

        self.console.print("[bold red]Recreating database schema from scratch (existing data is lost).[/bold red]")
        self.schema_tool.recreate_schema()
        self.logger.warning("DESTRUCTIVE fallback completed: schema recreated.")
        return "schema_recreate"

    def seed(self) -> bool:
        if not self.schema_tool.has_command(FIXTURES_COMMAND):
            self.logger.info("No fixtures command available; nothing to seed.")
            return False

        self.schema_tool.load_fixtures()
        self.logger.info("Seed data loaded.")
        return True
