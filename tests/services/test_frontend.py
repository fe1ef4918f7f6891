import os
import subprocess

import pytest
from rich.console import Console

from gickinstaller.errors import CommandFailedError, CommandTimeoutError, InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths
from gickinstaller.services.filesystem import FileSystemService
from gickinstaller.services.fingerprint import FingerprintService
from gickinstaller.services.frontend import FrontendSetupService
from gickinstaller.services.renderer import ConfigRenderer


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeNpm:
    """Stands in for git and npm; ``fail`` maps an npm verb to an exception."""

    def __init__(self, fail=None):
        self.fail = fail or {}
        self.calls = []

    def __call__(self, cmd, cwd=None, **_kwargs):
        if cmd[0] == "git":
            return subprocess.CompletedProcess(cmd, 128, stdout="", stderr="")
        self.calls.append(cmd)
        verb = cmd[1]
        if verb in self.fail:
            raise self.fail[verb]
        if verb == "install":
            for name in ("vue", "vite", "typescript", "@vitejs/plugin-vue"):
                os.makedirs(os.path.join(cwd, "node_modules", name), exist_ok=True)
        elif verb == "run":
            os.makedirs(os.path.join(cwd, "dist", "assets"), exist_ok=True)
            with open(os.path.join(cwd, "dist", "index.html"), "w", encoding="utf-8") as file_obj:
                file_obj.write("<html></html>")
            with open(os.path.join(cwd, "dist", "assets", "app.js"), "w", encoding="utf-8") as file_obj:
                file_obj.write("console.log(1);")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


class FakeNginx:
    def __init__(self):
        self.applied = []

    def apply(self, rendered):
        self.applied.append(rendered)


class FakeSystemSetup:
    def __init__(self):
        self.node_versions = []

    def install_nodejs(self, version):
        self.node_versions.append(version)


def _config(**overrides):
    values = {
        "domain": "design.example.com",
        "db_name": "iamgickpro",
        "db_user": "gick",
        "db_password": "apppass1",
        "admin_email": "admin@example.com",
        "admin_password": "adminpass",
        "admin_first_name": "Ada",
        "admin_last_name": "Admin",
    }
    values.update(overrides)
    return InstallationConfig(**values)


def _paths(tmp_path):
    paths = InstallPaths(
        install_dir=str(tmp_path / "app"),
        temp_dir=str(tmp_path / "tmp"),
        cache_dir=str(tmp_path / "cache"),
    )
    source = tmp_path / "cache" / "source" / "frontend"
    (source / "src").mkdir(parents=True)
    (source / "package.json").write_text('{"name": "frontend"}\n', encoding="utf-8")
    (source / "src" / "main.ts").write_text("createApp(App);\n", encoding="utf-8")
    return paths


def _service(runner, nginx=None, system_setup=None):
    console = Console(record=True)
    return FrontendSetupService(
        run_cmd=runner,
        fingerprint_service=FingerprintService(runner, DummyLogger()),
        renderer=ConfigRenderer(),
        nginx_service=nginx or FakeNginx(),
        system_setup_service=system_setup or FakeSystemSetup(),
        filesystem_service=FileSystemService(DummyLogger(), console),
        logger=DummyLogger(),
        console=console,
    )


def test_unchanged_sources_skip_build_but_still_apply_nginx(tmp_path):
    paths = _paths(tmp_path)
    runner = FakeNpm()
    nginx = FakeNginx()
    system_setup = FakeSystemSetup()
    service = _service(runner, nginx, system_setup)

    assert service.setup(_config(), paths) is True
    assert (tmp_path / "app" / "public" / "index.html").exists()
    assert os.path.exists(paths.fingerprint_file)
    assert system_setup.node_versions == ["21"]

    runner.calls.clear()
    assert service.setup(_config(base_path="/design-tool"), paths) is False
    assert runner.calls == []
    assert [rendered.shape for rendered in nginx.applied] == ["root", "subdirectory"]


def test_source_change_triggers_rebuild(tmp_path):
    paths = _paths(tmp_path)
    runner = FakeNpm()
    service = _service(runner)
    service.setup(_config(), paths)

    (tmp_path / "cache" / "source" / "frontend" / "src" / "main.ts").write_text("changed\n", encoding="utf-8")
    runner.calls.clear()

    assert service.setup(_config(), paths) is True
    assert ["npm", "run", "build"] in runner.calls


def test_npm_timeout_and_failure_are_reported_differently(tmp_path):
    paths = _paths(tmp_path)
    timeout = _service(FakeNpm(fail={"install": CommandTimeoutError("slow", timeout=600)}))
    failure = _service(FakeNpm(fail={"run": CommandFailedError("vite exploded", returncode=2)}))

    with pytest.raises(InstallerError, match="npm install timed out after 10 minutes"):
        timeout.setup(_config(), paths)
    with pytest.raises(InstallerError, match=r"npm run build failed \(exit code 2\)"):
        failure.setup(_config(), paths)

    assert not os.path.exists(paths.fingerprint_file)


def test_missing_build_output_forces_rebuild_even_when_recorded(tmp_path):
    paths = _paths(tmp_path)
    runner = FakeNpm()
    service = _service(runner)
    service.setup(_config(), paths)

    os.remove(str(tmp_path / "app" / "public" / "index.html"))
    runner.calls.clear()

    assert service.setup(_config(), paths) is True
    assert runner.calls
