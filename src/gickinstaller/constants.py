"""Static paths, modes and tuning values for gickinstaller."""

APP_NAME = "IAMGickPro"
APP_SLUG = "iamgickpro"

DIR_MODE = 0o755
FILE_MODE = 0o644
SCRIPT_MODE = 0o755
SECRET_FILE_MODE = 0o600
SECRET_SCRIPT_MODE = 0o700
WRITABLE_DIR_MODE = 0o775

DEFAULT_INSTALL_DIR = "/var/www/html/iamgickpro"
TEMP_DIR = "/tmp/iamgickpro-install"
CONFIG_CACHE_DIR = "/var/cache/iamgickpro-installer"
DEFAULT_LOG_FILE = "/var/log/iamgickpro-install.log"
DEFAULT_CONFIG_FILE = ".gickinstaller.yml"
OS_RELEASE_FILE = "/etc/os-release"

INSTALLER_REPO_URL = "https://github.com/Webictbyleo/iamgickpro-installer.git"
INSTALLER_ARCHIVE_URL = (
    "https://github.com/Webictbyleo/iamgickpro-installer/archive/refs/heads/main.zip"
)
REPO_URL = "https://github.com/Webictbyleo/iamgickpro.git"
SHAPES_REPO_URL = "https://github.com/Webictbyleo/design-vector-shapes.git"
SHAPES_BRANCH = "output-only"
CONNECTIVITY_URL = "https://github.com"

PHASES = (
    "user_input",
    "system_setup",
    "clone_repository",
    "env_configuration",
    "backend_setup",
    "frontend_setup",
    "database_setup",
    "content_import",
    "media_dependencies",
    "final_configuration",
)

WEB_USER = "www-data"
PHP_VERSION = "8.4"
PHP_FPM_SOCKET = f"/run/php/php{PHP_VERSION}-fpm.sock"
PHP_FPM_SERVICE = f"php{PHP_VERSION}-fpm"
DEFAULT_NODE_VERSION = "21"
SUPPORTED_OS_VERSIONS = {"ubuntu": "20.04", "debian": "11"}
EXPERIMENTAL_OS_IDS = ("centos", "rhel", "fedora")

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
SITE_NAME = APP_SLUG
SYSTEMD_DIR = "/etc/systemd/system"
WORKER_SERVICE = f"{APP_SLUG}-worker.service"
LOGROTATE_PATH = f"/etc/logrotate.d/{APP_SLUG}"
BACKUP_SCRIPT = f"/usr/local/bin/{APP_SLUG}-backup"
BACKUP_DIR = f"/var/backups/{APP_SLUG}"
BACKUP_CRON_SCHEDULE = "0 2 * * 0"
STATUS_SCRIPT = f"/usr/local/bin/{APP_SLUG}-status"
CONTENT_UPDATE_SCRIPT = f"/usr/local/bin/{APP_SLUG}-update-content"
SUMMARY_FILE = f"/root/{APP_SLUG}-installation-summary.txt"
IMAGEMAGICK_POLICY_DIR = "/usr/local/etc/ImageMagick-7"

DB_CHARSET = "utf8mb4"
DB_COLLATION = "utf8mb4_unicode_ci"
DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = 3306
SUPERUSER_NAME = "root"
PERMISSION_PROBE_DATABASE = "gickinstaller_permission_probe"
DEFAULT_MESSENGER_DSN = "doctrine://default?auto_setup=0"
NEUTRAL_MESSENGER_DSN = "sync://"
MIN_PASSWORD_LENGTH = 8

# Seconds.
DEFAULT_COMMAND_TIMEOUT = 1800
QUERY_TIMEOUT = 60
CLONE_TIMEOUT = 600
PACKAGE_TIMEOUT = 1800
COMPOSER_TIMEOUT = 900
NPM_INSTALL_TIMEOUT = 600
NPM_BUILD_TIMEOUT = 900
TEMPLATE_IMPORT_TIMEOUT = 600
COMPILE_TIMEOUT = 3600
SCHEMA_TIMEOUT = 600
CONNECTIVITY_TIMEOUT = 10

FINGERPRINT_EXTENSIONS = (
    ".html",
    ".vue",
    ".js",
    ".jsx",
    ".mjs",
    ".cjs",
    ".ts",
    ".tsx",
    ".css",
    ".scss",
    ".sass",
    ".less",
    ".json",
    ".svg",
)
# Files that change the build output without matching an extension.
FINGERPRINT_FILENAMES = (".env", ".env.production", ".npmrc", ".browserslistrc")
FINGERPRINT_EXCLUDED_DIRS = ("node_modules", "dist", ".git", ".cache", ".vite")

BACKEND_ROUTE_FAMILIES = ("api", "media", "uploads", "storage", "thumbnails", "secure-media")
CACHED_ROUTE_FAMILIES = ("uploads", "storage")

REQUIRED_REPOSITORY_PATHS = (
    "backend",
    "frontend",
    "scripts",
    "backend/composer.json",
    "frontend/package.json",
)
KEY_FRONTEND_DEPENDENCIES = ("vue", "vite", "typescript", "@vitejs/plugin-vue")
