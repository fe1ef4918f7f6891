"""Host preparation: runtimes, servers and PHP tuning."""

import os
import re
import shutil
from typing import Dict, List, Optional

from gickinstaller.constants import PHP_FPM_SERVICE, PHP_VERSION
from gickinstaller.errors import CommandFailedError, InstallerError
from gickinstaller.models import DatabaseAdminCredential, InstallationConfig
from gickinstaller.services.database import quote_literal

BASE_PACKAGES = {
    "apt": [
        "curl",
        "wget",
        "git",
        "unzip",
        "rsync",
        "software-properties-common",
        "apt-transport-https",
        "ca-certificates",
        "gnupg",
        "lsb-release",
        "build-essential",
        "cmake",
        "pkg-config",
        "libtool",
        "autoconf",
        "automake",
    ],
    "rpm": [
        "curl",
        "wget",
        "git",
        "unzip",
        "rsync",
        "ca-certificates",
        "gnupg2",
        "gcc",
        "gcc-c++",
        "make",
        "cmake",
        "pkgconfig",
        "libtool",
        "autoconf",
        "automake",
    ],
}

PHP_EXTENSIONS = ("common", "cli", "fpm", "curl", "gd", "intl", "mbstring", "opcache", "xml", "zip", "bcmath", "mysql")
PHP_OPTIONAL_EXTENSIONS = ("sqlite3", "soap", "readline", "redis", "imagick")

PHP_INI_SETTINGS = {
    "max_execution_time": "300",
    "max_input_time": "300",
    "memory_limit": "512M",
    "upload_max_filesize": "100M",
    "post_max_size": "100M",
    "date.timezone": "UTC",
    "opcache.enable": "1",
    "opcache.memory_consumption": "256",
}

COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"
NODESOURCE_SETUP_URL = "https://deb.nodesource.com/setup_{version}.x"
NODESOURCE_RPM_SETUP_URL = "https://rpm.nodesource.com/setup_{version}.x"
SURY_KEY_URL = "https://packages.sury.org/php/apt.gpg"
SURY_KEYRING = "/usr/share/keyrings/deb.sury.org-php.gpg"
SURY_SOURCES = "/etc/apt/sources.list.d/php-sury.list"
REMI_RELEASE_URL = "https://rpms.remirepo.net/enterprise/remi-release-{major}.rpm"


def php_package_names(manager: str, extensions) -> List[str]:
    if manager == "apt":
        return [f"php{PHP_VERSION}-{ext}" for ext in extensions]
    renamed = {"mysql": "mysqlnd", "redis": "pecl-redis", "imagick": "pecl-imagick"}
    return [f"php-{renamed.get(ext, ext)}" for ext in extensions]


def tune_php_ini(text: str, settings: Dict[str, str]) -> str:
    """Set each key in ``settings``, uncommenting it or appending it when absent."""
    for key, value in settings.items():
        pattern = re.compile(rf"^\s*;?\s*{re.escape(key)}\s*=.*$", re.MULTILINE)
        replacement = f"{key} = {value}"
        if pattern.search(text):
            text = pattern.sub(replacement, text, count=1)
        else:
            if not text.endswith("\n"):
                text += "\n"
            text += replacement + "\n"
    return text


class SystemdService:
    """Thin wrapper over systemctl."""

    def __init__(self, run_cmd, logger):
        self.run_cmd = run_cmd
        self.logger = logger

    def daemon_reload(self):
        self.run_cmd(["systemctl", "daemon-reload"], capture_output=True)

    def enable_now(self, *names: str) -> Optional[str]:
        """Enable and start the first unit name that exists; return it."""
        last_error = None
        for name in names:
            try:
                self.run_cmd(["systemctl", "enable", "--now", name], capture_output=True)
                return name
            except CommandFailedError as exc:
                last_error = exc
        if last_error is not None:
            raise last_error
        return None

    def restart(self, *names: str):
        last_error = None
        for name in names:
            try:
                self.run_cmd(["systemctl", "restart", name], capture_output=True)
                return
            except CommandFailedError as exc:
                last_error = exc
        if last_error is not None:
            raise last_error

    def is_active(self, name: str) -> bool:
        result = self.run_cmd(["systemctl", "is-active", "--quiet", name], check=False, capture_output=True)
        return result.returncode == 0


class SystemSetupService:
    """Installs every host-level dependency the application needs."""

    def __init__(
        self,
        run_cmd,
        package_service,
        download_service,
        database_service_factory,
        systemd_service,
        filesystem_service,
        logger,
        console,
        temp_dir: str,
        os_release: Dict[str, str],
        which=shutil.which,
    ):
        self.run_cmd = run_cmd
        self.packages = package_service
        self.download_service = download_service
        self.database_service_factory = database_service_factory
        self.systemd = systemd_service
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.temp_dir = temp_dir
        self.os_release = os_release
        self.which = which

    def setup(self, config: InstallationConfig):
        self._step("Updating package index", self.packages.update_index)
        self._step("Installing build tools", self.install_base_packages)
        self._step(f"Adding PHP {PHP_VERSION} repository", self.add_php_repository)
        self._step(f"Installing PHP {PHP_VERSION}", self.install_php)
        self._step("Installing Composer", self.install_composer)
        self._step(f"Installing Node.js {config.node_version}", self.install_nodejs, config.node_version)
        self._step("Installing MySQL", self.install_mysql, config)
        self._step("Installing nginx", self.install_nginx)
        self._step("Installing Redis", self.install_redis)
        self._step("Tuning PHP", self.configure_php)

    def _step(self, label: str, callback, *args):
        self.console.print(f"[blue]{label}...[/blue]")
        callback(*args)

    def install_base_packages(self):
        family = "apt" if self.packages.is_debian_family else "rpm"
        self.packages.install(BASE_PACKAGES[family])
        if family == "rpm":
            self.packages.install(["epel-release"], optional=True)

    def add_php_repository(self):
        manager = self.packages.manager
        if manager == "apt":
            if self.os_release.get("ID") == "ubuntu":
                self.run_cmd(["add-apt-repository", "-y", "ppa:ondrej/php"], capture_output=True)
            else:
                self._add_sury_repository()
        else:
            major = self.os_release.get("VERSION_ID", "8").split(".")[0]
            rpm_path = os.path.join(self.temp_dir, "remi-release.rpm")
            self.download_service.download_file(REMI_RELEASE_URL.format(major=major), rpm_path, "Remi repository")
            self.packages.install([rpm_path])
            if manager == "dnf":
                self.run_cmd(["dnf", "module", "reset", "-y", "php"], capture_output=True)
                self.run_cmd(["dnf", "module", "enable", "-y", f"php:remi-{PHP_VERSION}"], capture_output=True)
        self.packages.update_index()

    def _add_sury_repository(self):
        codename = self.os_release.get("VERSION_CODENAME")
        if not codename:
            raise InstallerError("Cannot determine the Debian release codename from /etc/os-release.")
        self.download_service.download_file(SURY_KEY_URL, SURY_KEYRING, "PHP repository key")
        self.filesystem_service.write_file(
            SURY_SOURCES,
            f"deb [signed-by={SURY_KEYRING}] https://packages.sury.org/php/ {codename} main\n",
        )

    def install_php(self):
        manager = self.packages.manager
        self.packages.install(php_package_names(manager, PHP_EXTENSIONS))
        self.packages.install(php_package_names(manager, PHP_OPTIONAL_EXTENSIONS), optional=True)

        result = self.run_cmd(["php", "-v"], capture_output=True)
        if f"PHP {PHP_VERSION}" not in (result.stdout or ""):
            raise InstallerError(f"PHP {PHP_VERSION} is not the active PHP version:\n{(result.stdout or '').strip()}")
        self.logger.info("PHP version: %s", (result.stdout or "").splitlines()[0])

    def install_composer(self):
        if self.which("composer"):
            self.logger.info("Composer already installed.")
            return
        installer = os.path.join(self.temp_dir, "composer-setup.php")
        self.download_service.download_file(COMPOSER_INSTALLER_URL, installer, "Composer installer")
        self.run_cmd(
            ["php", installer, "--install-dir=/usr/local/bin", "--filename=composer"],
            capture_output=True,
        )

    def installed_node_major(self) -> Optional[str]:
        if not self.which("node"):
            return None
        result = self.run_cmd(["node", "-v"], check=False, capture_output=True)
        match = re.match(r"v(\d+)\.", (result.stdout or "").strip())
        return match.group(1) if match else None

    def install_nodejs(self, node_version: str):
        if self.installed_node_major() == node_version:
            self.logger.info("Node.js %s already installed.", node_version)
            return

        url_template = NODESOURCE_SETUP_URL if self.packages.is_debian_family else NODESOURCE_RPM_SETUP_URL
        script = os.path.join(self.temp_dir, "nodesource-setup.sh")
        self.download_service.download_file(url_template.format(version=node_version), script, "NodeSource setup")
        self.run_cmd(["bash", script], capture_output=True)
        self.packages.install(["nodejs"])

        installed = self.installed_node_major()
        if installed != node_version:
            raise InstallerError(f"Node.js {node_version} was requested but {installed or 'none'} is installed.")

    def install_mysql(self, config: InstallationConfig):
        if self.which("mysqld") or self.which("mysql"):
            self.logger.info("MySQL already installed.")
            self.systemd.enable_now("mysql", "mysqld")
            return

        if self.packages.is_debian_family:
            if config.db_root_password:
                selections = "".join(
                    f"mysql-server mysql-server/{key} password {config.db_root_password}\n"
                    for key in ("root_password", "root_password_again")
                )
                self.run_cmd(["debconf-set-selections"], capture_output=True, input_text=selections)
            self.packages.install(["mysql-server", "mysql-client"])
        else:
            self.packages.install(["mysql-server"])
        self.systemd.enable_now("mysql", "mysqld")

        if config.db_root_password and not self.packages.is_debian_family:
            database = self.database_service_factory(config.db_host, config.db_port)
            anonymous_root = DatabaseAdminCredential(user="root", password="", is_superuser=True)
            database.execute(
                anonymous_root,
                f"ALTER USER 'root'@'localhost' IDENTIFIED BY {quote_literal(config.db_root_password)};",
            )

    def install_nginx(self):
        self.packages.install(["nginx"])
        self.systemd.enable_now("nginx")

    def install_redis(self):
        package = "redis-server" if self.packages.is_debian_family else "redis"
        missing = self.packages.install([package], optional=True)
        if not missing:
            self.systemd.enable_now("redis-server", "redis")

    def php_ini_paths(self) -> List[str]:
        candidates = [
            f"/etc/php/{PHP_VERSION}/fpm/php.ini",
            f"/etc/php/{PHP_VERSION}/cli/php.ini",
            "/etc/php.ini",
        ]
        return [path for path in candidates if os.path.isfile(path)]

    def configure_php(self):
        for path in self.php_ini_paths():
            backup = f"{path}.gick-backup"
            if not os.path.exists(backup):
                shutil.copy2(path, backup)
            with open(path, "r", encoding="utf-8") as file_obj:
                text = file_obj.read()
            self.filesystem_service.write_file(path, tune_php_ini(text, PHP_INI_SETTINGS))
            self.logger.info("Tuned %s", path)
        self.systemd.restart(PHP_FPM_SERVICE, "php-fpm")
