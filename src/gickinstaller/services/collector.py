"""Collects, validates and caches the installation settings."""

from typing import Any, Callable, Dict, Optional

from rich.table import Table

from gickinstaller.constants import (
    APP_NAME,
    DEFAULT_DB_HOST,
    DEFAULT_DB_PORT,
    DEFAULT_NODE_VERSION,
)
from gickinstaller.errors import ValidationError
from gickinstaller.models import DatabaseAdminCredential, InstallationConfig
from gickinstaller.services import validation
from gickinstaller.services.validation import require

TRUE_VALUES = {"1", "true", "yes", "y", "on"}


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


class ConfigurationCollector:
    """Builds an :class:`InstallationConfig` from answers and operator prompts.

    ``answers`` come from the YAML answers file; any field missing there is
    asked for interactively unless the run is unattended, in which case a
    missing required value is fatal.
    """

    def __init__(
        self,
        cache_service,
        database_factory: Callable[[str, int], Any],
        logger,
        console,
        prompter=None,
        unattended: bool = False,
    ):
        self.cache_service = cache_service
        self.database_factory = database_factory
        self.logger = logger
        self.console = console
        self.prompter = prompter
        self.unattended = unattended

    def load_cached(self) -> Optional[InstallationConfig]:
        return self.cache_service.load()

    def collect(self, answers: Optional[Dict[str, Any]] = None, run_copy_path: Optional[str] = None) -> InstallationConfig:
        values: Dict[str, Any] = dict(answers or {})

        while True:
            config = self._collect_once(values)
            if self.unattended or self._confirm_summary(config):
                break
            self.console.print("[yellow]Let's go through the settings again.[/yellow]")
            values = config.to_dict()
            # Force the probe and password questions to run again.
            for key in ("db_root_password", "db_user_can_create"):
                values.pop(key, None)

        self.cache_service.save(config, run_copy_path=run_copy_path)
        return config

    def _collect_once(self, values: Dict[str, Any]) -> InstallationConfig:
        self.console.print("[bold blue]Application[/bold blue]")
        domain = self._field(values, "domain", "Domain name (e.g. design.example.com)", validation.validate_domain)
        base_path = self._field(
            values,
            "base_path",
            "Base path (empty for domain root, e.g. /design-tool)",
            validation.normalize_base_path,
            default="",
            required=False,
        )

        self.console.print("[bold blue]Database[/bold blue]")
        db_host = self._field(values, "db_host", "Database host", str.strip, default=DEFAULT_DB_HOST)
        db_port = self._field(values, "db_port", "Database port", validation.validate_port, default=str(DEFAULT_DB_PORT))
        db_name = self._field(
            values,
            "db_name",
            "Database name",
            lambda raw: validation.validate_identifier(raw, "Database name"),
            default="iamgickpro",
        )
        db_user = self._field(
            values,
            "db_user",
            "Database user",
            lambda raw: validation.validate_identifier(raw, "Database user"),
            default="iamgickpro",
        )
        db_password = self._field(
            values,
            "db_password",
            "Database password",
            lambda raw: validation.validate_password(raw, "Database password"),
            password=True,
        )
        db_root_password, can_create = self._select_database_identity(
            values, db_host, db_port, db_user, db_password
        )

        self.console.print("[bold blue]Administrator account[/bold blue]")
        admin_email = self._field(values, "admin_email", "Admin email", validation.validate_email)
        admin_password = self._field(
            values,
            "admin_password",
            "Admin password (min. 8 characters)",
            lambda raw: validation.validate_password(raw, "Admin password"),
            password=True,
        )
        admin_first_name = self._field(values, "admin_first_name", "Admin first name", str.strip)
        admin_last_name = self._field(values, "admin_last_name", "Admin last name", str.strip)

        self.console.print("[bold blue]Optional settings[/bold blue]")
        app_name = self._field(values, "app_name", "Application name", str.strip, default=APP_NAME)
        mail_from = self._field(
            values,
            "mail_from_address",
            "Mail-from address",
            validation.validate_email,
            default=admin_email,
        )
        unsplash = self._field(values, "unsplash_api_key", "Unsplash API key", str.strip, default="", required=False)
        pexels = self._field(values, "pexels_api_key", "Pexels API key", str.strip, default="", required=False)
        iconfinder = self._field(
            values, "iconfinder_api_key", "Iconfinder API key", str.strip, default="", required=False
        )
        node_version = self._field(
            values,
            "node_version",
            "Node.js major version",
            validation.validate_node_version,
            default=DEFAULT_NODE_VERSION,
        )
        install_imagemagick = self._flag(values, "install_imagemagick", "Compile ImageMagick if needed?")
        install_ffmpeg = self._flag(values, "install_ffmpeg", "Install FFmpeg if needed?")

        config_values = dict(values)
        config_values.update(
            {
                "domain": domain,
                "base_path": base_path,
                "db_host": db_host,
                "db_port": db_port,
                "db_name": db_name,
                "db_user": db_user,
                "db_password": db_password,
                "db_root_password": db_root_password,
                "db_user_can_create": can_create,
                "admin_email": admin_email,
                "admin_password": admin_password,
                "admin_first_name": admin_first_name,
                "admin_last_name": admin_last_name,
                "app_name": app_name,
                "mail_from_address": mail_from,
                "unsplash_api_key": unsplash,
                "pexels_api_key": pexels,
                "iconfinder_api_key": iconfinder,
                "node_version": node_version,
                "install_imagemagick": install_imagemagick,
                "install_ffmpeg": install_ffmpeg,
            }
        )
        return InstallationConfig.from_dict(config_values)

    def _select_database_identity(self, values, host: str, port: int, user: str, password: str):
        """Probe the application credential; ask for the superuser password if it cannot create databases."""
        database = self.database_factory(host, port)
        app_credential = DatabaseAdminCredential(user=user, password=password, is_superuser=False)
        if database.can_create_databases(app_credential):
            self.logger.info("Database user `%s` can create databases; no superuser password needed.", user)
            return "", True

        # MySQL may not be installed yet; the password is then set during system setup
        # and checked by the database phase.
        self.logger.info("Database user `%s` cannot create databases; superuser password required.", user)
        self.console.print(
            f"[yellow]`{user}` cannot create databases yet; the MySQL root password is needed.[/yellow]"
        )
        root_password = self._field(values, "db_root_password", "MySQL root password", str, password=True)
        return root_password, False

    def _field(
        self,
        values: Dict[str, Any],
        key: str,
        label: str,
        validator: Callable[[str], Any],
        default: Optional[str] = None,
        password: bool = False,
        required: bool = True,
    ):
        if key in values and values[key] is not None and str(values[key]).strip():
            try:
                return validator(str(values[key]))
            except ValidationError as exc:
                if self.unattended or self.prompter is None:
                    raise
                self.console.print(f"[red]{exc}[/red]")
                if not password:
                    default = str(values[key])

        if self.unattended or self.prompter is None:
            if default is not None and (default or not required):
                return validator(default)
            if not required:
                return validator("")
            return require(None, key)

        while True:
            answer = self.prompter.ask(label, default=default, password=password)
            if required and not str(answer).strip():
                require(None, key)
            try:
                return validator(answer)
            except ValidationError as exc:
                self.console.print(f"[red]{exc}[/red]")

    def _flag(self, values: Dict[str, Any], key: str, label: str, default: bool = True) -> bool:
        if key in values and values[key] is not None:
            return as_bool(values[key])
        if self.unattended or self.prompter is None:
            return default
        return self.prompter.confirm(label, default=default)

    def _confirm_summary(self, config: InstallationConfig) -> bool:
        table = Table(title="Installation settings", show_header=False)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, value in config.masked().items():
            table.add_row(key, str(value))
        table.add_row("frontend_url", config.frontend_url)
        self.console.print(table)
        return self.prompter.confirm("Proceed with these settings?", default=True)
