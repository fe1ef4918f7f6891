import logging
import os
import shutil
import sys
from typing import Any, Callable, Dict, List, Optional

import requests
from rich.console import Console
from rich.panel import Panel

from .constants import (
    APP_NAME,
    CONFIG_CACHE_DIR,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_INSTALL_DIR,
    OS_RELEASE_FILE,
    PHASES,
    TEMP_DIR,
)
from .errors import InstallerError
from .errors_catalog import actionable_error
from .models import InstallationConfig, InstallPaths, select_admin_credential
from .services.archive import ArchiveService
from .services.backend import BackendSetupService
from .services.collector import ConfigurationCollector
from .services.command_runner import CommandRunner
from .services.config_cache import ConfigCacheService
from .services.content import ContentImportService
from .services.database import DatabaseService
from .services.database_setup import DatabaseSetupService
from .services.download import DownloadService
from .services.environment import EnvironmentService
from .services.filesystem import FileSystemService
from .services.finalize import FinalizeService
from .services.fingerprint import FingerprintService
from .services.frontend import FrontendSetupService
from .services.media import MediaDependenciesService, read_total_memory_mb
from .services.nginx import NginxService
from .services.packages import PackageManagerService
from .services.phase_runner import PhaseRunner
from .services.provisioner import DatabaseProvisioner
from .services.renderer import ConfigRenderer
from .services.repository import RepositoryService
from .services.schema import SchemaToolService
from .services.self_update import SelfUpdateService
from .services.state import PhaseStateService
from .services.system import SystemdService, SystemSetupService
from .services.terminal import TerminalPrompter
from .services.validation import ValidationService, parse_os_release

console = Console()
logger = logging.getLogger("gickinstaller")

MIN_MEMORY_MB = 2048
MIN_FREE_DISK_GB = 20


class Installer:
    """Drives a full IAMGickPro installation through its ten phases."""

    def __init__(
        self,
        install_dir: str = DEFAULT_INSTALL_DIR,
        answers: Optional[Dict[str, Any]] = None,
        force_reinstall: bool = False,
        update_installer: bool = False,
        skip_update_check: bool = False,
        unattended: bool = False,
        clear_database: bool = False,
        argv: Optional[List[str]] = None,
        temp_dir: str = TEMP_DIR,
        cache_dir: str = CONFIG_CACHE_DIR,
        prompter=None,
        geteuid: Callable[[], int] = os.geteuid,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        if not install_dir or not os.path.isabs(install_dir):
            raise InstallerError(f"The install directory must be an absolute path, got {install_dir!r}.")

        self.answers = dict(answers or {})
        self.force_reinstall = force_reinstall
        self.update_installer = update_installer
        self.skip_update_check = skip_update_check
        self.unattended = unattended
        self.clear_database = clear_database
        self.argv = list(argv if argv is not None else sys.argv[1:])
        self.geteuid = geteuid
        self.which = which
        self.paths = InstallPaths(
            install_dir=os.path.abspath(install_dir).rstrip("/") or "/",
            temp_dir=temp_dir,
            cache_dir=cache_dir,
        )
        self.config: Optional[InstallationConfig] = None
        self.os_release: Dict[str, str] = {}
        self.prompter = prompter
        if self.prompter is None and not unattended:
            self.prompter = TerminalPrompter()

        self.command_runner = CommandRunner(logger=logger, default_timeout=DEFAULT_COMMAND_TIMEOUT)
        run_cmd = self.command_runner.run
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.archive_service = ArchiveService()
        self.validation_service = ValidationService(requests_module=requests)
        self.download_service = DownloadService(logger=logger, console=console, requests_module=requests)
        self.renderer = ConfigRenderer()
        self.state_service = PhaseStateService(
            state_file=self.paths.state_file,
            install_dir=self.paths.install_dir,
            logger=logger,
        )
        self.cache_service = ConfigCacheService(
            cache_dir=cache_dir,
            install_dir=self.paths.install_dir,
            filesystem_service=self.filesystem_service,
            logger=logger,
        )
        self.collector = ConfigurationCollector(
            cache_service=self.cache_service,
            database_factory=self._database_for,
            logger=logger,
            console=console,
            prompter=self.prompter,
            unattended=unattended,
        )
        self.package_service = PackageManagerService(run_cmd, logger, console, which=which)
        self.systemd_service = SystemdService(run_cmd, logger)
        self.schema_tool = SchemaToolService(run_cmd, logger, backend_dir=self.paths.backend_dir)
        self.fingerprint_service = FingerprintService(run_cmd, logger)
        self.nginx_service = NginxService(
            run_cmd,
            self.filesystem_service,
            logger,
            console,
            available_dir=self.paths.nginx_available_dir,
            enabled_dir=self.paths.nginx_enabled_dir,
        )
        self.repository_service = RepositoryService(run_cmd, self.filesystem_service, logger, console)
        self.environment_service = EnvironmentService(self.renderer, self.filesystem_service, logger)
        self.backend_service = BackendSetupService(
            run_cmd, self.filesystem_service, self.systemd_service, self.renderer, logger, console
        )
        self.media_service = MediaDependenciesService(
            run_cmd,
            self.package_service,
            self.download_service,
            self.archive_service,
            self.renderer,
            self.filesystem_service,
            logger,
            console,
            which=which,
        )
        self.self_update_service = SelfUpdateService(
            run_cmd,
            self.download_service,
            self.archive_service,
            self.validation_service,
            self.filesystem_service,
            logger,
            console,
            temp_dir=temp_dir,
            revision_file=os.path.join(cache_dir, "installer.revision"),
        )
        self.phase_runner = PhaseRunner(self.state_service, logger, console)

    def _database_for(self, host: str, port: int) -> DatabaseService:
        return DatabaseService(self.command_runner.run, logger, host, port)

    def _database(self) -> DatabaseService:
        config = self.require_config()
        return self._database_for(config.db_host, config.db_port)

    def require_config(self) -> InstallationConfig:
        if self.config is None:
            self.config = self.cache_service.load()
        if self.config is None:
            raise InstallerError(actionable_error("missing_cached_config"))
        return self.config

    # Preflight

    def check_root(self):
        if self.geteuid() != 0:
            raise InstallerError(actionable_error("not_root"))

    def detect_os(self, os_release_file: str = OS_RELEASE_FILE) -> Dict[str, str]:
        try:
            with open(os_release_file, "r", encoding="utf-8") as file_obj:
                self.os_release = parse_os_release(file_obj.read())
        except OSError as exc:
            raise InstallerError(f"Cannot read {os_release_file}: {exc}") from exc
        self.validation_service.check_os_support(self.os_release, logger, console)
        return self.os_release

    def check_resources(self):
        memory_mb = read_total_memory_mb()
        if memory_mb < MIN_MEMORY_MB:
            logger.warning("Only %s MB of memory; %s MB or more is recommended.", memory_mb, MIN_MEMORY_MB)
        probe = self.paths.install_dir
        while not os.path.exists(probe):
            probe = os.path.dirname(probe)
        free_gb = shutil.disk_usage(probe).free // (1024 ** 3)
        if free_gb < MIN_FREE_DISK_GB:
            logger.warning("Only %s GB free on %s; %s GB or more is recommended.", free_gb, probe, MIN_FREE_DISK_GB)

    def welcome(self) -> bool:
        cache_note = (
            "Configuration cache available (use --clear-cache to reset)."
            if self.cache_service.exists()
            else "No cached configuration."
        )
        console.print(
            Panel.fit(
                f"[bold]{APP_NAME} installer[/bold]\n"
                f"Install directory: {self.paths.install_dir}\n{cache_note}",
                border_style="blue",
            )
        )
        if self.unattended:
            return True
        return self.prompter.confirm("Continue with the installation?", default=True)

    def prepare_directories(self):
        self.filesystem_service.ensure_dir(self.paths.install_dir)
        self.filesystem_service.ensure_dir(self.paths.temp_dir)
        self.filesystem_service.ensure_dir(self.paths.cache_dir, 0o700)

    def existing_installation(self) -> bool:
        return os.path.isfile(os.path.join(self.paths.backend_dir, "composer.json"))

    def resolve_existing_installation(self, resuming: bool):
        """Refuse to overwrite a previous installation without consent."""
        if resuming or self.force_reinstall or not self.existing_installation():
            return
        if self.unattended:
            raise InstallerError(actionable_error("existing_installation", path=self.paths.install_dir))
        console.print(f"[yellow]An installation already exists at {self.paths.install_dir}.[/yellow]")
        if not self.prompter.confirm("Update it in place (data is kept)?", default=False):
            raise InstallerError(actionable_error("existing_installation", path=self.paths.install_dir))

    def reset_for_reinstall(self):
        self.state_service.discard()
        logger.info("Forced reinstall: phase record discarded.")

    # Phases

    def phase_user_input(self):
        values: Dict[str, Any] = {}
        cached = self.collector.load_cached()
        if cached is not None:
            reuse = self.unattended or self.prompter.confirm("Use the cached configuration?", default=True)
            if reuse:
                values.update(cached.to_dict())
                console.print("[green]Using cached configuration.[/green]")
        values.update(self.answers)

        self.config = self.collector.collect(values, run_copy_path=self.paths.run_config_file)
        if self.which("mysql"):
            self._database().ensure_reachable(select_admin_credential(self.config))

    def _system_setup(self) -> SystemSetupService:
        return SystemSetupService(
            self.command_runner.run,
            self.package_service,
            self.download_service,
            self._database_for,
            self.systemd_service,
            self.filesystem_service,
            logger,
            console,
            temp_dir=self.paths.temp_dir,
            os_release=self.os_release,
            which=self.which,
        )

    def phase_system_setup(self):
        self._system_setup().setup(self.require_config())

    def phase_clone_repository(self):
        self.repository_service.clone_all(self.paths)

    def phase_env_configuration(self):
        self.environment_service.configure(self.require_config(), self.paths)

    def phase_backend_setup(self):
        self.backend_service.setup(self.require_config(), self.paths)

    def phase_frontend_setup(self):
        service = FrontendSetupService(
            self.command_runner.run,
            self.fingerprint_service,
            self.renderer,
            self.nginx_service,
            self._system_setup(),
            self.filesystem_service,
            logger,
            console,
        )
        service.setup(self.require_config(), self.paths)

    def phase_database_setup(self):
        database = self._database()
        provisioner = DatabaseProvisioner(database, self.schema_tool, logger, console)
        service = DatabaseSetupService(
            provisioner,
            database,
            self.command_runner.run,
            self.renderer,
            self.filesystem_service,
            logger,
            console,
        )
        service.setup(self.require_config(), self.paths, clear_database=self.clear_database)

    def phase_content_import(self):
        service = ContentImportService(
            self.command_runner.run,
            self.schema_tool,
            self._database(),
            self.renderer,
            self.filesystem_service,
            logger,
            console,
        )
        service.run(self.require_config(), self.paths)

    def phase_media_dependencies(self):
        self.media_service.run(self.require_config(), self.paths)

    def phase_final_configuration(self):
        service = FinalizeService(
            self.command_runner.run,
            self.schema_tool,
            self._database(),
            self.package_service,
            self.systemd_service,
            self.renderer,
            self.filesystem_service,
            logger,
            console,
            which=self.which,
        )
        service.run(self.require_config(), self.paths)

    def phase_entries(self):
        return [(name, getattr(self, f"phase_{name}")) for name in PHASES]

    def run(self) -> int:
        try:
            self.check_root()
            self.detect_os()
            self.check_resources()

            if not self.skip_update_check:
                self.self_update_service.check_and_update(
                    self.argv,
                    prompter=self.prompter,
                    force=self.update_installer,
                    unattended=self.unattended,
                )

            if not self.welcome():
                console.print("[yellow]Installation cancelled.[/yellow]")
                return 1

            self.prepare_directories()
            if self.force_reinstall:
                self.reset_for_reinstall()

            record = self.state_service.initialize(PHASES)
            self.resolve_existing_installation(resuming=bool(record.completed))

            outcome = self.phase_runner.run(self.phase_entries(), record)
            logger.info("Phase outcome: %s", outcome)

            config = self.require_config()
            console.print(
                Panel.fit(
                    f"[bold green]{config.app_name} is installed.[/bold green]\n"
                    f"Open {config.frontend_url}",
                    border_style="green",
                )
            )
            return 0

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except InstallerError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return 1
        finally:
            if self.prompter is not None and hasattr(self.prompter, "close"):
                self.prompter.close()
