"""Tests for YAML configuration."""

import pytest
import yaml

from ci_board.config import AdapterConfig, AppConfig, RefreshConfig, _parse_config, _validate_config, load_config


def test_default_config():
    config = AppConfig()
    assert config.store.path is None
    assert config.refresh.concurrency == 4
    assert config.adapters == []
    assert config.servers == []


def test_parse_config():
    raw = {
        "store": {"path": "./state/board.json"},
        "refresh": {"concurrency": 8},
        "adapters": [
            {"name": "jenkins", "class": "parsers.jenkins.JenkinsParser"},
            {"name": "gitlab", "class": "parsers.gitlab.GitLabParser", "enabled": False},
        ],
        "servers": [
            {
                "name": "Main",
                "url": "https://jenkins.test/",
                "type": "jenkins",
                "arguments": {"token": 1234},
            }
        ],
    }
    config = _parse_config(raw)
    assert config.store.path == "./state/board.json"
    assert config.refresh.concurrency == 8
    assert [a.name for a in config.adapters] == ["jenkins", "gitlab"]
    assert [a.name for a in config.enabled_adapters] == ["jenkins"]
    assert config.servers[0].arguments == {"token": "1234"}
    assert config.servers[0].disabled is False


def test_parse_empty_sections():
    config = _parse_config({"store": None, "adapters": None})
    assert config.store.path is None
    assert config.adapters == []


def test_validate_concurrency():
    config = AppConfig(refresh=RefreshConfig(concurrency=0))
    with pytest.raises(ValueError, match="concurrency"):
        _validate_config(config)


def test_validate_adapter_without_class():
    config = AppConfig(adapters=[AdapterConfig(name="jenkins", class_path="")])
    with pytest.raises(ValueError, match="no class path"):
        _validate_config(config)


def test_validate_duplicate_adapter_names():
    config = AppConfig(
        adapters=[
            AdapterConfig(name="jenkins", class_path="a.B"),
            AdapterConfig(name="jenkins", class_path="c.D"),
        ]
    )
    with pytest.raises(ValueError, match="duplicate adapter names"):
        _validate_config(config)


def test_validate_duplicate_server_urls():
    config = _parse_config({
        "servers": [
            {"name": "A", "url": "https://a.test/", "type": "jenkins"},
            {"name": "B", "url": "https://a.test/", "type": "jenkins"},
        ]
    })
    with pytest.raises(ValueError, match="duplicate server urls"):
        _validate_config(config)


def test_load_config_missing_file(tmp_path):
    config = load_config(tmp_path / "nonexistent.yaml")
    assert config.adapters == []


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path).refresh.concurrency == 4


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({
        "refresh": {"concurrency": 2},
        "adapters": [{"name": "fake", "class": "conftest.FakeJenkinsParser"}],
    }))
    config = load_config(path)
    assert config.refresh.concurrency == 2
    assert config.adapters[0].class_path == "conftest.FakeJenkinsParser"
