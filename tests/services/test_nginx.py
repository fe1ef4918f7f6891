import os
import subprocess

import pytest
from rich.console import Console

from gickinstaller.errors import CommandFailedError, InstallerError
from gickinstaller.models import RenderedServerConfig
from gickinstaller.services.filesystem import FileSystemService
from gickinstaller.services.nginx import NginxService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeRunner:
    def __init__(self, test_returncode=0, reload_fails=False):
        self.test_returncode = test_returncode
        self.reload_fails = reload_fails
        self.calls = []

    def __call__(self, cmd, check=True, **_kwargs):
        self.calls.append(cmd)
        if cmd == ["nginx", "-t"]:
            return subprocess.CompletedProcess(cmd, self.test_returncode, stdout="", stderr="unexpected }")
        if cmd[:2] == ["systemctl", "reload"] and self.reload_fails:
            raise CommandFailedError("reload failed", returncode=1)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def _service(tmp_path, runner):
    console = Console(record=True)
    return NginxService(
        runner,
        FileSystemService(DummyLogger(), console),
        DummyLogger(),
        console,
        available_dir=str(tmp_path / "sites-available"),
        enabled_dir=str(tmp_path / "sites-enabled"),
    )


def _rendered(text="server { listen 80; }\n"):
    return RenderedServerConfig(shape="root", site_name="iamgickpro", text=text)


def test_apply_writes_links_and_reloads(tmp_path):
    runner = FakeRunner()
    service = _service(tmp_path, runner)
    (tmp_path / "sites-enabled").mkdir()
    os.symlink("/etc/nginx/sites-available/default", str(tmp_path / "sites-enabled" / "default"))

    service.apply(_rendered())

    site = tmp_path / "sites-available" / "iamgickpro"
    link = tmp_path / "sites-enabled" / "iamgickpro"
    assert site.read_text(encoding="utf-8") == "server { listen 80; }\n"
    assert os.readlink(str(link)) == str(site)
    assert not os.path.lexists(str(tmp_path / "sites-enabled" / "default"))
    assert runner.calls == [["nginx", "-t"], ["systemctl", "reload", "nginx"]]
    assert not (tmp_path / "sites-available" / "iamgickpro.gick-backup").exists()


def test_failed_check_restores_previous_site_and_skips_reload(tmp_path):
    runner = FakeRunner(test_returncode=1)
    service = _service(tmp_path, runner)
    (tmp_path / "sites-available").mkdir()
    (tmp_path / "sites-enabled").mkdir()
    site = tmp_path / "sites-available" / "iamgickpro"
    site.write_text("previous\n", encoding="utf-8")
    os.symlink(str(site), str(tmp_path / "sites-enabled" / "iamgickpro"))

    with pytest.raises(InstallerError, match="nginx rejected"):
        service.apply(_rendered("broken {\n"))

    assert site.read_text(encoding="utf-8") == "previous\n"
    assert os.readlink(str(tmp_path / "sites-enabled" / "iamgickpro")) == str(site)
    assert ["systemctl", "reload", "nginx"] not in runner.calls
    assert not (tmp_path / "sites-available" / "iamgickpro.gick-backup").exists()


def test_failed_check_without_previous_site_removes_new_files(tmp_path):
    service = _service(tmp_path, FakeRunner(test_returncode=1))

    with pytest.raises(InstallerError):
        service.apply(_rendered("broken {\n"))

    assert not (tmp_path / "sites-available" / "iamgickpro").exists()
    assert not os.path.lexists(str(tmp_path / "sites-enabled" / "iamgickpro"))


def test_reload_failure_falls_back_to_restart(tmp_path):
    runner = FakeRunner(reload_fails=True)

    _service(tmp_path, runner).apply(_rendered())

    assert runner.calls[-1] == ["systemctl", "restart", "nginx"]
