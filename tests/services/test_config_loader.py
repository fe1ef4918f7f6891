import pytest

from gickinstaller.errors import InstallerError
from gickinstaller.services.config_loader import ConfigLoader


def test_config_loader_loads_yaml_mapping(tmp_path):
    config_file = tmp_path / ".gickinstaller.yml"
    config_file.write_text(
        "domain: design.example.com\nbase_path: /design-tool\nunattended: true\ndb_port: 3307\n",
        encoding="utf-8",
    )

    loader = ConfigLoader()
    loaded = loader.load(str(config_file))

    assert loaded["domain"] == "design.example.com"
    assert loaded["unattended"] is True
    assert loaded["db_port"] == 3307


def test_config_loader_rejects_unknown_keys(tmp_path):
    config_file = tmp_path / ".gickinstaller.yml"
    config_file.write_text("unknown_key: true\n", encoding="utf-8")

    loader = ConfigLoader()

    with pytest.raises(InstallerError, match="Unknown configuration keys"):
        loader.load(str(config_file))


def test_config_loader_rejects_non_mapping_and_missing_file(tmp_path):
    config_file = tmp_path / "list.yml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(InstallerError, match="YAML mapping"):
        ConfigLoader().load(str(config_file))
    with pytest.raises(InstallerError, match="Config file not found"):
        ConfigLoader().load(str(tmp_path / "missing.yml"))


def test_split_answers_drops_cli_options():
    answers = ConfigLoader.split_answers({"domain": "example.com", "unattended": True, "verbose": False})

    assert answers == {"domain": "example.com"}
