"""Backend deployment: code, dependencies, JWT keys and the queue worker unit."""

import os

from gickinstaller.constants import (
    COMPOSER_TIMEOUT,
    DIR_MODE,
    FILE_MODE,
    SCRIPT_MODE,
    SECRET_FILE_MODE,
    SYSTEMD_DIR,
    WEB_USER,
    WORKER_SERVICE,
    WRITABLE_DIR_MODE,
)
from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths
from gickinstaller.services.environment import read_env_file

COPY_EXCLUDES = ("vendor", "var", ".env*", ".git", "node_modules")
RUNTIME_DIRS = (
    "var/log",
    "var/cache",
    "public/uploads/templates",
    "public/uploads/designs",
    "public/uploads/media",
    "storage/shapes",
)
WRITABLE_ROOTS = ("var", "public/uploads", "storage")
PASSPHRASE_ENV = "GICK_JWT_PASSPHRASE"


class BackendSetupService:
    """Deploys the Symfony backend into ``<install_dir>/backend``."""

    def __init__(
        self,
        run_cmd,
        filesystem_service,
        systemd_service,
        renderer,
        logger,
        console,
        systemd_dir: str = SYSTEMD_DIR,
    ):
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service
        self.systemd = systemd_service
        self.renderer = renderer
        self.logger = logger
        self.console = console
        self.systemd_dir = systemd_dir

    def setup(self, config: InstallationConfig, paths: InstallPaths):
        self.deploy_code(paths)
        self.install_dependencies(paths.backend_dir)
        self.ensure_jwt_keys(paths.backend_dir)
        self.prepare_runtime_dirs(paths.backend_dir)
        self.validate(paths.backend_dir)
        self.install_worker_unit(config, paths)
        self.console.print("[green]Backend deployed.[/green]")

    def deploy_code(self, paths: InstallPaths):
        rendered_env = os.path.join(paths.backend_source_dir, ".env")
        if not os.path.isfile(rendered_env):
            raise InstallerError(f"Backend environment file missing at {rendered_env}; re-run env_configuration.")

        self.filesystem_service.ensure_dir(paths.backend_dir)
        self.filesystem_service.copy_tree(paths.backend_source_dir, paths.backend_dir, exclude=COPY_EXCLUDES)
        self.filesystem_service.set_tree_permissions(paths.backend_dir, DIR_MODE, FILE_MODE, SCRIPT_MODE)
        self.filesystem_service.set_permissions(os.path.join(paths.backend_dir, "bin", "console"), SCRIPT_MODE)
        # written after the tree walk so the secret mode survives
        with open(rendered_env, "r", encoding="utf-8") as file_obj:
            self.filesystem_service.write_file(
                os.path.join(paths.backend_dir, ".env"), file_obj.read(), mode=SECRET_FILE_MODE
            )
        self.logger.info("Backend code copied to %s", paths.backend_dir)

    def install_dependencies(self, backend_dir: str):
        self.console.print("[blue]Installing Composer dependencies...[/blue]")
        self.run_cmd(
            ["composer", "install", "--no-dev", "--optimize-autoloader", "--no-interaction"],
            cwd=backend_dir,
            capture_output=True,
            timeout=COMPOSER_TIMEOUT,
            env={"COMPOSER_ALLOW_SUPERUSER": "1", "COMPOSER_PROCESS_TIMEOUT": str(COMPOSER_TIMEOUT)},
            retry_count=1,
            retry_backoff_seconds=10.0,
        )

    def _passphrase(self, backend_dir: str) -> str:
        passphrase = read_env_file(os.path.join(backend_dir, ".env")).get("JWT_PASSPHRASE", "")
        if not passphrase:
            raise InstallerError("JWT_PASSPHRASE is missing from the backend .env file.")
        return passphrase

    def keys_match(self, backend_dir: str, passphrase: str) -> bool:
        private_key = os.path.join(backend_dir, "config", "jwt", "private.pem")
        if not os.path.isfile(private_key):
            return False
        result = self.run_cmd(
            ["openssl", "pkey", "-in", private_key, "-passin", f"env:{PASSPHRASE_ENV}", "-noout"],
            check=False,
            capture_output=True,
            env={PASSPHRASE_ENV: passphrase},
        )
        return result.returncode == 0

    def ensure_jwt_keys(self, backend_dir: str):
        passphrase = self._passphrase(backend_dir)
        jwt_dir = os.path.join(backend_dir, "config", "jwt")
        private_key = os.path.join(jwt_dir, "private.pem")
        public_key = os.path.join(jwt_dir, "public.pem")

        if self.keys_match(backend_dir, passphrase) and os.path.isfile(public_key):
            self.filesystem_service.set_permissions(private_key, SECRET_FILE_MODE)
            self.logger.info("Existing JWT key pair kept.")
            return

        self.filesystem_service.ensure_dir(jwt_dir)
        env = {PASSPHRASE_ENV: passphrase}
        self.run_cmd(
            [
                "openssl",
                "genpkey",
                "-algorithm",
                "RSA",
                "-aes256",
                "-pass",
                f"env:{PASSPHRASE_ENV}",
                "-pkeyopt",
                "rsa_keygen_bits:4096",
                "-out",
                private_key,
            ],
            capture_output=True,
            env=env,
        )
        self.run_cmd(
            ["openssl", "pkey", "-in", private_key, "-passin", f"env:{PASSPHRASE_ENV}", "-pubout", "-out", public_key],
            capture_output=True,
            env=env,
        )
        self.filesystem_service.set_permissions(private_key, SECRET_FILE_MODE)
        self.filesystem_service.set_permissions(public_key, FILE_MODE)
        self.filesystem_service.chown_tree(jwt_dir, WEB_USER)
        self.logger.info("Generated JWT key pair in %s", jwt_dir)

    def prepare_runtime_dirs(self, backend_dir: str):
        for relative in RUNTIME_DIRS:
            self.filesystem_service.ensure_dir(os.path.join(backend_dir, relative), WRITABLE_DIR_MODE)
        for relative in WRITABLE_ROOTS:
            root = os.path.join(backend_dir, relative)
            self.filesystem_service.set_tree_permissions(root, WRITABLE_DIR_MODE, FILE_MODE, SCRIPT_MODE)
            self.filesystem_service.chown_tree(root, WEB_USER)

    def validate(self, backend_dir: str):
        for relative in ("composer.json", ".env", "vendor", "config/jwt/private.pem"):
            if not os.path.exists(os.path.join(backend_dir, relative)):
                raise InstallerError(f"Backend validation failed: {relative} not found in {backend_dir}.")

        self.run_cmd(["php", "-r", "require 'vendor/autoload.php';"], cwd=backend_dir, capture_output=True)

        result = self.run_cmd(
            ["php", "bin/console", "debug:config", "lexik_jwt_authentication", "--no-interaction"],
            cwd=backend_dir,
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            self.logger.warning("JWT bundle configuration could not be verified.")
            self.console.print("[yellow]Warning: JWT configuration could not be verified.[/yellow]")

    def install_worker_unit(self, config: InstallationConfig, paths: InstallPaths):
        unit = self.renderer.render_template(
            "worker.service.j2",
            app_name=config.app_name,
            web_user=WEB_USER,
            backend_dir=paths.backend_dir,
        )
        self.filesystem_service.write_file(os.path.join(self.systemd_dir, WORKER_SERVICE), unit)
        self.systemd.daemon_reload()
        self.run_cmd(["systemctl", "enable", WORKER_SERVICE], capture_output=True)
