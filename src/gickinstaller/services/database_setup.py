"""Database phase: provisioning followed by indexes and scheduled backups."""

from typing import Dict, Tuple

from gickinstaller.constants import (
    BACKUP_CRON_SCHEDULE,
    BACKUP_DIR,
    BACKUP_SCRIPT,
    SECRET_SCRIPT_MODE,
)
from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths, ProvisionResult, select_admin_credential
from gickinstaller.services.database import quote_identifier, quote_literal

BACKUP_RETENTION_DAYS = 30

# Best-effort secondary indexes for the most frequent listing queries.
PERFORMANCE_INDEXES: Dict[str, Tuple[str, ...]] = {
    "users": ("created_at", "is_active", "last_login_at", "plan", "deleted_at"),
    "designs": ("project_id", "created_at", "updated_at", "is_public", "deleted_at"),
    "projects": ("user_id", "created_at", "updated_at", "is_public", "deleted_at"),
    "templates": ("is_active", "usage_count", "rating", "is_public", "is_recommended", "deleted_at"),
    "media": ("created_at", "updated_at"),
    "export_jobs": ("created_at", "status"),
    "layers": ("created_at",),
    "user_subscriptions": ("user_id", "plan_id", "status", "created_at"),
    "user_integrations": ("user_id", "service", "created_at"),
    "video_analysis": ("created_at", "status"),
    "shapes": ("created_at",),
    "plugins": ("is_active", "created_at"),
}


def cron_line(schedule: str, script: str) -> str:
    return f"{schedule} {script} >/dev/null 2>&1"


def merge_crontab(existing: str, line: str, script: str) -> str:
    """Return ``existing`` with exactly one entry that runs ``script``."""
    kept = [entry for entry in existing.splitlines() if entry.strip() and script not in entry]
    kept.append(line)
    return "\n".join(kept) + "\n"


class DatabaseSetupService:
    def __init__(self, provisioner, database_service, run_cmd, renderer, filesystem_service, logger, console):
        self.provisioner = provisioner
        self.database_service = database_service
        self.run_cmd = run_cmd
        self.renderer = renderer
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console

    def setup(self, config: InstallationConfig, paths: InstallPaths, clear_database: bool = False) -> ProvisionResult:
        result = self.provisioner.provision(config, clear_database=clear_database)
        self.create_indexes(config)
        self.install_backup(config, paths)
        return result

    def create_indexes(self, config: InstallationConfig) -> int:
        """Create missing indexes; return how many were added."""
        credential = select_admin_credential(config)
        tables = set(self.database_service.table_names(credential, config.db_name))
        existing = set(
            self.database_service.query_values(
                credential,
                "SELECT CONCAT(TABLE_NAME, '.', INDEX_NAME) FROM information_schema.STATISTICS "
                f"WHERE TABLE_SCHEMA = {quote_literal(config.db_name)};",
            )
        )

        created = 0
        for table, columns in PERFORMANCE_INDEXES.items():
            if table not in tables:
                continue
            for column in columns:
                name = f"idx_{table}_{column}"
                if f"{table}.{name}" in existing:
                    continue
                result = self.database_service.execute(
                    credential,
                    f"CREATE INDEX {quote_identifier(name)} ON {quote_identifier(table)}({quote_identifier(column)});",
                    database=config.db_name,
                    check=False,
                )
                if result.returncode == 0:
                    created += 1
                else:
                    self.logger.debug("Index %s skipped: %s", name, (result.stderr or "").strip())
        self.logger.info("Database indexes created: %s", created)
        return created

    def install_backup(self, config: InstallationConfig, paths: InstallPaths, script_path: str = BACKUP_SCRIPT):
        script = self.renderer.render_template(
            "backup.sh.j2",
            app_name=config.app_name,
            backup_dir=BACKUP_DIR,
            db_password=config.db_password,
            db_host=config.db_host,
            db_port=config.db_port,
            db_user=config.db_user,
            db_name=config.db_name,
            backend_public_dir=paths.backend_public_dir,
            retention_days=BACKUP_RETENTION_DAYS,
        )
        # Holds the database password; root only.
        self.filesystem_service.write_file(script_path, script, mode=SECRET_SCRIPT_MODE)
        self.schedule(cron_line(BACKUP_CRON_SCHEDULE, script_path), script_path)

    def schedule(self, line: str, script: str):
        try:
            current = self.run_cmd(["crontab", "-l"], check=False, capture_output=True)
            existing = current.stdout if current.returncode == 0 else ""
            self.run_cmd(["crontab", "-"], capture_output=True, input_text=merge_crontab(existing or "", line, script))
        except InstallerError as exc:
            self.logger.warning("Could not schedule %s: %s", script, exc)
            self.console.print(f"[yellow]Warning: backup schedule not installed ({exc}).[/yellow]")
            return
        self.logger.info("Scheduled %s", line)
