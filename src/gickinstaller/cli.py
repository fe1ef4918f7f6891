import logging
import os
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .constants import CONFIG_CACHE_DIR, DEFAULT_CONFIG_FILE, DEFAULT_INSTALL_DIR, DEFAULT_LOG_FILE
from .core import Installer, InstallerError
from .services.collector import as_bool
from .services.config_cache import ConfigCacheService
from .services.config_loader import ConfigLoader
from .services.filesystem import FileSystemService

ENV_VARS = {
    "install_dir": "IAMGICKPRO_INSTALL_DIR",
    "force_reinstall": "FORCE_REINSTALL",
    "skip_update_check": "SKIP_UPDATE_CHECK",
    "unattended": "UNATTENDED",
}


def _resolve_option(cli_value, config, key, default=None):
    """CLI flag, then environment variable, then YAML value, then default."""
    if cli_value is not None:
        return cli_value
    env_var = ENV_VARS.get(key)
    if env_var and os.environ.get(env_var):
        return os.environ[env_var]
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _show_cache(cache_service: ConfigCacheService, console: Console):
    details = cache_service.describe()
    if details is None:
        console.print("[yellow]No cached configuration found.[/yellow]")
        return
    table = Table(title="Cached configuration", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in details["values"].items():
        table.add_row(key, str(value))
    console.print(table)
    console.print(f"Cache file: {details['path']}")
    console.print(f"Last updated: {details['modified']}")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--install-dir",
    required=False,
    type=click.Path(),
    help=f"Installation directory (default: {DEFAULT_INSTALL_DIR}). Env: IAMGICKPRO_INSTALL_DIR.",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML answers file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--clear-cache", is_flag=True, default=False, help="Clear cached configuration and exit.")
@click.option("--show-cache", is_flag=True, default=False, help="Display the cached configuration and exit.")
@click.option(
    "--force-reinstall",
    is_flag=True,
    default=None,
    help="Run every phase again, ignoring recorded progress. Env: FORCE_REINSTALL.",
)
@click.option("--update-installer", is_flag=True, default=None, help="Update the installer before running.")
@click.option(
    "--skip-update-check",
    is_flag=True,
    default=None,
    help="Do not check for a newer installer. Env: SKIP_UPDATE_CHECK.",
)
@click.option(
    "--unattended",
    is_flag=True,
    default=None,
    help="Never prompt; every required value must come from the answers file. Env: UNATTENDED.",
)
@click.option(
    "--clear-database",
    is_flag=True,
    default=None,
    help="Drop and recreate the application database (destroys data).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help=f"Path to log file (default: {DEFAULT_LOG_FILE})")
def main(
    install_dir,
    config,
    clear_cache,
    show_cache,
    force_reinstall,
    update_installer,
    skip_update_check,
    unattended,
    clear_database,
    verbose,
    log_file,
):
    """Install IAMGickPro on this server."""
    logger = logging.getLogger("gickinstaller")
    console = Console()

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except InstallerError as exc:
        raise click.ClickException(str(exc)) from exc

    install_dir = str(_resolve_option(install_dir, config_values, "install_dir", default=DEFAULT_INSTALL_DIR))
    force_reinstall = as_bool(_resolve_option(force_reinstall, config_values, "force_reinstall", default=False))
    update_installer = as_bool(_resolve_option(update_installer, config_values, "update_installer", default=False))
    skip_update_check = as_bool(
        _resolve_option(skip_update_check, config_values, "skip_update_check", default=False)
    )
    unattended = as_bool(_resolve_option(unattended, config_values, "unattended", default=False))
    clear_database = as_bool(_resolve_option(clear_database, config_values, "clear_database", default=False))
    verbose = as_bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file", default=DEFAULT_LOG_FILE)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if show_cache or clear_cache:
        cache_service = ConfigCacheService(
            cache_dir=CONFIG_CACHE_DIR,
            install_dir=os.path.abspath(install_dir),
            filesystem_service=FileSystemService(logger=logger, console=console),
            logger=logger,
        )
        if show_cache:
            _show_cache(cache_service, console)
        if clear_cache:
            cache_service.clear()
            console.print("[green]Cached configuration cleared.[/green]")
        raise SystemExit(0)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as exc:
            logger.warning("Cannot write log file %s: %s", log_file, exc)
        else:
            file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
            logger.addHandler(file_handler)

    try:
        installer = Installer(
            install_dir=install_dir,
            answers=ConfigLoader.split_answers(config_values),
            force_reinstall=force_reinstall,
            update_installer=update_installer,
            skip_update_check=skip_update_check,
            unattended=unattended,
            clear_database=clear_database,
            argv=sys.argv[1:],
        )
    except InstallerError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(installer.run())


if __name__ == "__main__":
    main()
