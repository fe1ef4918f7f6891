import os
import stat

import pytest
import yaml

from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig
from gickinstaller.services.config_cache import ConfigCacheService
from gickinstaller.services.filesystem import FileSystemService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def _config():
    return InstallationConfig(
        domain="design.example.com",
        base_path="/design-tool",
        db_name="iamgickpro",
        db_user="gick",
        db_password="apppass1",
        db_root_password="rootpass",
        admin_email="admin@example.com",
        admin_password="adminpass",
        admin_first_name="Ada",
        admin_last_name="Admin",
    )


def _service(tmp_path, install_dir="/var/www/html/iamgickpro"):
    return ConfigCacheService(
        cache_dir=str(tmp_path / "cache"),
        install_dir=install_dir,
        filesystem_service=FileSystemService(DummyLogger(), DummyConsole()),
        logger=DummyLogger(),
    )


def test_save_and_load_round_trip_with_owner_only_permissions(tmp_path):
    service = _service(tmp_path)
    run_copy = tmp_path / "tmp" / "config.yml"

    service.save(_config(), run_copy_path=str(run_copy))

    assert service.load() == _config()
    assert stat.S_IMODE((tmp_path / "cache").stat().st_mode) == 0o700
    assert stat.S_IMODE(run_copy.stat().st_mode) == 0o600
    assert stat.S_IMODE(os.stat(service.cache_file).st_mode) == 0o600


def test_describe_masks_secrets(tmp_path):
    service = _service(tmp_path)
    service.save(_config())

    details = service.describe()

    assert details["values"]["db_password"] == "********"
    assert details["values"]["db_root_password"] == "********"
    assert details["values"]["admin_password"] == "********"
    assert details["values"]["domain"] == "design.example.com"
    assert details["values"]["unsplash_api_key"] == ""


def test_cache_for_other_install_dir_is_ignored(tmp_path):
    service = _service(tmp_path)
    service.save(_config())
    with open(service.cache_file, "r", encoding="utf-8") as file_obj:
        data = yaml.safe_load(file_obj)
    data["install_dir"] = "/opt/elsewhere"
    with open(service.cache_file, "w", encoding="utf-8") as file_obj:
        yaml.safe_dump(data, file_obj)

    assert service.load() is None


def test_corrupt_cache_is_reported(tmp_path):
    service = _service(tmp_path)
    (tmp_path / "cache").mkdir()
    with open(service.cache_file, "w", encoding="utf-8") as file_obj:
        file_obj.write("- not\n- a mapping\n")

    with pytest.raises(InstallerError, match="invalid format"):
        service.load()


def test_clear_removes_cache_directory(tmp_path):
    service = _service(tmp_path)
    service.save(_config())

    service.clear()

    assert not service.exists()
    assert service.describe() is None
