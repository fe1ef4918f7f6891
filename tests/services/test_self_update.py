import subprocess
import sys

from rich.console import Console

from gickinstaller.errors import InstallerError
from gickinstaller.services.self_update import SKIP_FLAG, SelfUpdateService


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class FakeValidation:
    def __init__(self, reachable=True):
        self.reachable = reachable

    def is_reachable(self, url, logger):
        return self.reachable


class FakeGit:
    def __init__(self, local="aaa", remote="bbb"):
        self.local = local
        self.remote = remote

    def __call__(self, cmd, **_kwargs):
        if cmd[:2] == ["git", "ls-remote"]:
            if self.remote is None:
                raise InstallerError("network down")
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.remote}\tHEAD\n", stderr="")
        if "rev-parse" in cmd:
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.local}\n", stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


class FakePrompter:
    def __init__(self, answer):
        self.answer = answer
        self.asked = 0

    def confirm(self, label, default=False):
        self.asked += 1
        return self.answer


def _service(tmp_path, runner, reachable=True, logger=None, exec_calls=None):
    calls = exec_calls if exec_calls is not None else []
    return SelfUpdateService(
        run_cmd=runner,
        download_service=None,
        archive_service=None,
        validation_service=FakeValidation(reachable),
        filesystem_service=None,
        logger=logger or DummyLogger(),
        console=Console(record=True),
        temp_dir=str(tmp_path),
        revision_file=str(tmp_path / "revision"),
        exec_fn=lambda path, args: calls.append(args),
    )


def test_unreachable_upstream_skips_check(tmp_path):
    assert _service(tmp_path, FakeGit(), reachable=False).check_and_update([], FakePrompter(True)) is False


def test_up_to_date_installer_is_left_alone(tmp_path):
    prompter = FakePrompter(True)

    assert _service(tmp_path, FakeGit(local="same", remote="same")).check_and_update([], prompter) is False
    assert prompter.asked == 0


def test_unattended_run_only_reports_newer_version(tmp_path):
    installed = []
    service = _service(tmp_path, FakeGit())
    service.install_update = installed.append

    assert service.check_and_update([], None, unattended=True) is False
    assert installed == []


def test_declined_update_continues(tmp_path):
    prompter = FakePrompter(False)

    assert _service(tmp_path, FakeGit()).check_and_update([], prompter) is False
    assert prompter.asked == 1


def test_failures_degrade_to_warning(tmp_path):
    logger = DummyLogger()

    assert _service(tmp_path, FakeGit(remote=None), logger=logger).check_and_update([], FakePrompter(True)) is False
    assert any("network down" in warning for warning in logger.warnings)


def test_accepted_update_installs_and_restarts_with_skip_flag(tmp_path):
    exec_calls = []
    installed = []
    service = _service(tmp_path, FakeGit(), exec_calls=exec_calls)
    service.install_update = installed.append

    assert service.check_and_update(["--unattended", "--update-installer"], FakePrompter(True)) is True

    assert installed == ["bbb"]
    assert exec_calls == [[sys.executable, "-m", "gickinstaller", "--unattended", SKIP_FLAG]]


def test_local_revision_falls_back_to_recorded_file(tmp_path):
    def no_checkout(cmd, **_kwargs):
        return subprocess.CompletedProcess(cmd, 128, stdout="", stderr="")

    (tmp_path / "revision").write_text("ccc\n", encoding="utf-8")

    assert _service(tmp_path, no_checkout).local_revision() == "ccc"
