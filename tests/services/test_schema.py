import subprocess

from gickinstaller.services.schema import TRANSPORT_ENV, SchemaToolService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class RecordingRunner:
    def __init__(self, stdout=""):
        self.calls = []
        self.stdout = stdout

    def __call__(self, cmd, cwd=None, env=None, **_kwargs):
        self.calls.append({"cmd": cmd, "cwd": cwd, "env": env})
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


def test_neutral_transport_applies_only_inside_block(tmp_path):
    runner = RecordingRunner()
    service = SchemaToolService(runner, DummyLogger(), backend_dir=str(tmp_path))

    with service.neutral_transport():
        service.update_schema()
    service.clear_cache()

    assert runner.calls[0]["env"][TRANSPORT_ENV] == "sync://"
    assert TRANSPORT_ENV not in runner.calls[1]["env"]
    assert runner.calls[0]["cmd"] == ["php", "bin/console", "doctrine:schema:update", "--force", "--no-interaction"]
    assert runner.calls[0]["cwd"] == str(tmp_path)


def test_neutral_transport_restores_previous_value_after_error(tmp_path):
    service = SchemaToolService(RecordingRunner(), DummyLogger(), backend_dir=str(tmp_path))
    service.env_overrides[TRANSPORT_ENV] = "doctrine://default"

    try:
        with service.neutral_transport():
            raise RuntimeError("schema failed")
    except RuntimeError:
        pass

    assert service.env_overrides[TRANSPORT_ENV] == "doctrine://default"


def test_has_command_reads_console_list_once(tmp_path):
    runner = RecordingRunner(stdout="cache:clear   Clear the cache\ndoctrine:fixtures:load   Load data\n")
    service = SchemaToolService(runner, DummyLogger(), backend_dir=str(tmp_path))

    assert service.has_command("doctrine:fixtures:load")
    assert not service.has_command("app:shapes:import")
    assert len(runner.calls) == 1


def test_has_migrations_looks_for_php_files(tmp_path):
    service = SchemaToolService(RecordingRunner(), DummyLogger(), backend_dir=str(tmp_path))
    assert service.has_migrations() is False

    (tmp_path / "migrations").mkdir()
    (tmp_path / "migrations" / "Version20240101.php").write_text("<?php\n", encoding="utf-8")
    assert service.has_migrations() is True
