"""Last phase: administrator account, permissions, services and hand-off."""

import ipaddress
import os
from datetime import datetime, timezone
from typing import Optional

from gickinstaller.constants import (
    BACKUP_CRON_SCHEDULE,
    BACKUP_SCRIPT,
    CONTENT_UPDATE_SCRIPT,
    DIR_MODE,
    FILE_MODE,
    LOGROTATE_PATH,
    PHP_FPM_SERVICE,
    SCRIPT_MODE,
    SECRET_FILE_MODE,
    STATUS_SCRIPT,
    SUMMARY_FILE,
    WEB_USER,
    WORKER_SERVICE,
    WRITABLE_DIR_MODE,
)
from gickinstaller.errors import InstallerError
from gickinstaller.models import DatabaseAdminCredential, InstallationConfig, InstallPaths
from gickinstaller.services.backend import WRITABLE_ROOTS
from gickinstaller.services.database import quote_identifier, quote_literal

USER_TABLE = "user"
ADMIN_ROLES = '["ROLE_ADMIN", "ROLE_USER"]'
ADMIN_PASSWORD_ENV = "GICK_ADMIN_PASSWORD"


def is_public_hostname(domain: str) -> bool:
    """Whether a certificate authority could ever validate ``domain``."""
    if domain == "localhost" or "." not in domain:
        return False
    try:
        ipaddress.ip_address(domain)
    except ValueError:
        return True
    return False


class FinalizeService:
    def __init__(
        self,
        run_cmd,
        schema_tool,
        database_service,
        package_service,
        systemd_service,
        renderer,
        filesystem_service,
        logger,
        console,
        which,
        summary_file: str = SUMMARY_FILE,
        status_script: str = STATUS_SCRIPT,
        logrotate_path: str = LOGROTATE_PATH,
    ):
        self.run_cmd = run_cmd
        self.schema_tool = schema_tool
        self.database_service = database_service
        self.packages = package_service
        self.systemd = systemd_service
        self.renderer = renderer
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.which = which
        self.summary_file = summary_file
        self.status_script = status_script
        self.logrotate_path = logrotate_path

    def run(self, config: InstallationConfig, paths: InstallPaths) -> str:
        self.ensure_admin(config, paths)
        self.apply_permissions(paths)
        self.start_worker()
        self.configure_firewall()
        self.install_status_script(config, paths)
        self.install_logrotate(paths)
        self.issue_certificate(config)
        self.warm_up(paths)
        summary = self.write_summary(config, paths)
        self.filesystem_service.cleanup_dir(paths.temp_dir)
        return summary

    def _warn(self, message: str):
        self.logger.warning(message)
        self.console.print(f"[yellow]Warning: {message}[/yellow]")

    def _app_credential(self, config: InstallationConfig) -> DatabaseAdminCredential:
        return DatabaseAdminCredential(user=config.db_user, password=config.db_password, is_superuser=False)

    def admin_exists(self, config: InstallationConfig) -> bool:
        values = self.database_service.query_values(
            self._app_credential(config),
            f"SELECT COUNT(*) FROM {quote_identifier(USER_TABLE)} WHERE email = {quote_literal(config.admin_email)};",
            database=config.db_name,
        )
        return bool(values) and values[0] != "0"

    def ensure_admin(self, config: InstallationConfig, paths: InstallPaths):
        if self.admin_exists(config):
            self.console.print(f"[green]Administrator {config.admin_email} already exists.[/green]")
            return

        result = self.schema_tool.console(
            [
                "app:user:create",
                f"--email={config.admin_email}",
                f"--password={config.admin_password}",
                "--role=ROLE_ADMIN",
                f"--first-name={config.admin_first_name}",
                f"--last-name={config.admin_last_name}",
            ],
            check=False,
        )
        if result.returncode == 0:
            self.console.print(f"[green]Administrator created: {config.admin_email}[/green]")
            return

        self.logger.warning("app:user:create failed, inserting the administrator directly.")
        self.insert_admin(config, paths)
        self.console.print(f"[green]Administrator created via database: {config.admin_email}[/green]")

    def hash_password(self, password: str, paths: InstallPaths) -> str:
        result = self.run_cmd(
            ["php", "-r", f"echo password_hash(getenv('{ADMIN_PASSWORD_ENV}'), PASSWORD_DEFAULT);"],
            capture_output=True,
            cwd=paths.backend_dir,
            env={ADMIN_PASSWORD_ENV: password},
        )
        hashed = (result.stdout or "").strip()
        if not hashed.startswith("$"):
            raise InstallerError("Could not hash the administrator password with PHP.")
        return hashed

    def insert_admin(self, config: InstallationConfig, paths: InstallPaths):
        hashed = self.hash_password(config.admin_password, paths)
        sql = (
            f"INSERT INTO {quote_identifier(USER_TABLE)} "
            "(email, password, roles, first_name, last_name, created_at, updated_at) VALUES ("
            f"{quote_literal(config.admin_email)}, {quote_literal(hashed)}, {quote_literal(ADMIN_ROLES)}, "
            f"{quote_literal(config.admin_first_name)}, {quote_literal(config.admin_last_name)}, NOW(), NOW());"
        )
        self.database_service.execute(self._app_credential(config), sql, database=config.db_name)

    def apply_permissions(self, paths: InstallPaths):
        self.filesystem_service.set_tree_permissions(paths.install_dir, DIR_MODE, FILE_MODE, SCRIPT_MODE)
        for relative in WRITABLE_ROOTS:
            root = os.path.join(paths.backend_dir, relative)
            self.filesystem_service.set_tree_permissions(root, WRITABLE_DIR_MODE, FILE_MODE, SCRIPT_MODE)
        for relative, mode in (
            ("bin/console", SCRIPT_MODE),
            (".env", SECRET_FILE_MODE),
            ("config/jwt/private.pem", SECRET_FILE_MODE),
            ("config/jwt/public.pem", FILE_MODE),
        ):
            path = os.path.join(paths.backend_dir, relative)
            if os.path.exists(path):
                self.filesystem_service.set_permissions(path, mode)
        self.filesystem_service.chown_tree(paths.install_dir, WEB_USER)

    def start_worker(self):
        try:
            self.systemd.restart(WORKER_SERVICE)
        except InstallerError as exc:
            self._warn(f"Background worker did not start: {exc}")

    def configure_firewall(self) -> Optional[str]:
        if self.which("ufw"):
            commands = [
                ["ufw", "allow", "OpenSSH"],
                ["ufw", "allow", "Nginx Full"],
                ["ufw", "--force", "enable"],
            ]
            tool = "ufw"
        elif self.which("firewall-cmd"):
            commands = [
                ["firewall-cmd", "--permanent", "--add-service=ssh"],
                ["firewall-cmd", "--permanent", "--add-service=http"],
                ["firewall-cmd", "--permanent", "--add-service=https"],
                ["firewall-cmd", "--reload"],
            ]
            tool = "firewalld"
        else:
            self._warn("No firewall detected; allow SSH, HTTP and HTTPS manually.")
            return None

        try:
            for cmd in commands:
                self.run_cmd(cmd, capture_output=True)
        except InstallerError as exc:
            self._warn(f"Firewall configuration failed: {exc}")
            return None
        self.logger.info("Firewall configured with %s", tool)
        return tool

    def install_status_script(self, config: InstallationConfig, paths: InstallPaths):
        script = self.renderer.render_template(
            "status.sh.j2",
            app_name=config.app_name,
            php_fpm_service=PHP_FPM_SERVICE,
            worker_service=WORKER_SERVICE,
            frontend_url=config.frontend_url,
            install_dir=paths.install_dir,
        )
        self.filesystem_service.write_file(self.status_script, script, mode=SCRIPT_MODE)

    def install_logrotate(self, paths: InstallPaths):
        policy = self.renderer.render_template("logrotate.j2", backend_dir=paths.backend_dir, web_user=WEB_USER)
        self.filesystem_service.write_file(self.logrotate_path, policy)

    def issue_certificate(self, config: InstallationConfig) -> bool:
        if not is_public_hostname(config.domain):
            self.logger.info("Skipping TLS certificate for non-public host %s", config.domain)
            return False

        if not self.which("certbot"):
            missing = self.packages.install(["certbot", "python3-certbot-nginx"], optional=True)
            if missing:
                self._warn("certbot unavailable; run `certbot --nginx` once DNS points here.")
                return False

        try:
            self.run_cmd(
                [
                    "certbot",
                    "--nginx",
                    "-d",
                    config.domain,
                    "--non-interactive",
                    "--agree-tos",
                    "-m",
                    config.admin_email,
                    "--redirect",
                ],
                capture_output=True,
            )
        except InstallerError as exc:
            self._warn(f"TLS certificate not issued: {exc}")
            return False
        self.console.print(f"[green]TLS certificate issued for {config.domain}.[/green]")
        return True

    def warm_up(self, paths: InstallPaths):
        self.schema_tool.clear_cache()
        self.run_cmd(
            ["composer", "dump-autoload", "--optimize", "--no-dev"],
            check=False,
            capture_output=True,
            cwd=paths.backend_dir,
            env={"COMPOSER_ALLOW_SUPERUSER": "1"},
        )

    def write_summary(self, config: InstallationConfig, paths: InstallPaths) -> str:
        text = self.renderer.render_template(
            "summary.txt.j2",
            app_name=config.app_name,
            generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
            frontend_url=config.frontend_url,
            backend_url=config.backend_url,
            install_dir=paths.install_dir,
            db_name=config.db_name,
            db_host=config.db_host,
            db_port=config.db_port,
            db_user=config.db_user,
            db_password=config.db_password,
            admin_email=config.admin_email,
            admin_password=config.admin_password,
            status_script=self.status_script,
            backup_script=BACKUP_SCRIPT,
            backup_schedule=BACKUP_CRON_SCHEDULE,
            content_update_script=CONTENT_UPDATE_SCRIPT,
            worker_service=WORKER_SERVICE,
        )
        self.filesystem_service.write_file(self.summary_file, text, mode=SECRET_FILE_MODE)
        self.console.print(f"[green]Installation summary written to {self.summary_file}[/green]")
        return self.summary_file
