from __future__ import annotations

import json
from pathlib import Path

import pytest

from listlens.config import ConfigurationError, ListlensConfig, load_config, resolve_credentials


def test_defaults_follow_data_root_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LISTLENS_DATA_ROOT", str(tmp_path))

    config = load_config()

    assert isinstance(config, ListlensConfig)
    assert config.paths.list_path == tmp_path / "list.json"
    assert config.paths.meta_path == tmp_path / "meta.json"
    assert config.paths.meta_template_path == tmp_path / "meta_template.json"
    assert config.paths.resource_root == tmp_path / "res"
    assert config.catalog.token_url == "https://id.twitch.tv/oauth2/token"
    assert config.catalog.games_url == "https://api.igdb.com/v4/games"
    assert config.catalog.rate_limit_cooldown_seconds == 60.0
    assert config.catalog.batch_size == 500
    assert config.resources.max_connections == 8


def test_defaults_use_working_directory(monkeypatch, tmp_path):
    monkeypatch.delenv("LISTLENS_DATA_ROOT", raising=False)
    monkeypatch.chdir(tmp_path)

    assert load_config().paths.data_root == Path.cwd()


def test_yaml_overrides(tmp_path):
    config_path = tmp_path / "listlens.yml"
    config_path.write_text(
        "\n".join(
            [
                "paths:",
                f"  data_root: {tmp_path / 'data'}",
                "  list_file: history.json",
                "catalog:",
                "  batch_size: 100",
                "  rate_limit_cooldown_seconds: 5",
                "resources:",
                "  max_connections: 2",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.paths.list_path == tmp_path / "data" / "history.json"
    assert config.paths.meta_path == tmp_path / "data" / "meta.json"
    assert config.catalog.batch_size == 100
    assert config.catalog.rate_limit_cooldown_seconds == 5.0
    assert config.resources.max_connections == 2


def test_json_config_and_explicit_data_root_wins(tmp_path):
    config_path = tmp_path / "listlens.json"
    config_path.write_text(json.dumps({"paths": {"data_root": "/elsewhere"}}), encoding="utf-8")

    config = load_config(config_path, data_root=tmp_path)

    assert config.paths.data_root == tmp_path


def test_empty_yaml_gives_defaults(tmp_path):
    config_path = tmp_path / "listlens.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config(config_path, data_root=tmp_path).catalog.batch_size == 500


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yml")


def test_non_mapping_config_rejected(tmp_path):
    config_path = tmp_path / "listlens.yml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must map keys"):
        load_config(config_path)


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"catalog": {"batch_size": 0}}, "batch_size"),
        ({"resources": {"max_connections": 0}}, "max_connections"),
    ],
)
def test_non_positive_limits_rejected(tmp_path, payload, message):
    config_path = tmp_path / "listlens.json"
    config_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_config(config_path, data_root=tmp_path)


class TestResolveCredentials:
    def test_reads_configured_variables(self, tmp_path):
        config = load_config(data_root=tmp_path)

        assert resolve_credentials(config, {"CLIENT_ID": "abc", "CLIENT_SECRET": "xyz"}) == ("abc", "xyz")

    def test_reports_every_missing_variable(self, tmp_path):
        config = load_config(data_root=tmp_path)

        with pytest.raises(ConfigurationError, match="CLIENT_ID, CLIENT_SECRET"):
            resolve_credentials(config, {})

    def test_empty_values_count_as_missing(self, tmp_path):
        config = load_config(data_root=tmp_path)

        with pytest.raises(ConfigurationError, match="CLIENT_SECRET"):
            resolve_credentials(config, {"CLIENT_ID": "abc", "CLIENT_SECRET": ""})

    def test_falls_back_to_process_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CLIENT_ID", "from-env")
        monkeypatch.setenv("CLIENT_SECRET", "secret-env")

        assert resolve_credentials(load_config(data_root=tmp_path)) == ("from-env", "secret-env")
