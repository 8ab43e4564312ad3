import logging

import pytest

from phononkit.config import (
    Config,
    ConfigError,
    config_search_paths,
    default_config,
    default_config_path,
    load_config,
    save_config,
)
from phononkit.telemetry import TelemetryHandler


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("PHONON_CERTIFICATE", raising=False)
    monkeypatch.delenv("PHONON_TELEMETRYKEY", raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    before = list(root.handlers)
    yield root
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)


def test_default_config_uses_alpha_certificate():
    config = default_config()
    assert config.certificate == "alpha"
    assert config.telemetry_key == ""


def test_search_paths_unix(monkeypatch, clean_env):
    monkeypatch.setenv("HOME", "/home/tester")
    paths = config_search_paths("linux")
    assert paths[0] == "/home/tester/.phonon/"
    assert paths[1] == "/.phonon/phonon.yml"
    assert paths[2] == "/usr/var/phonon/phonon.yml"


def test_search_paths_expand_xdg(monkeypatch, clean_env):
    monkeypatch.setenv("XDG_CONFIG_HOME", "/xdg")
    assert config_search_paths("darwin")[1] == "/xdg/.phonon/phonon.yml"


def test_search_paths_windows(monkeypatch):
    monkeypatch.setenv("HOME", "C:\\Users\\tester")
    assert config_search_paths("windows") == ["C:\\Users\\tester\\.phonon\\"]


def test_search_paths_unknown_platform():
    with pytest.raises(ConfigError, match="unknown os: plan9 encountered"):
        config_search_paths("plan9")


def test_default_config_path(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_config_path("linux") == str(tmp_path) + "/.phonon/"
    assert default_config_path("windows") == str(tmp_path) + "\\.phonon\\"
    with pytest.raises(ConfigError):
        default_config_path("plan9")


def test_load_without_file_gives_default(monkeypatch, tmp_path, clean_env):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert load_config() == default_config()


def test_load_found_in_home(monkeypatch, tmp_path, clean_env):
    monkeypatch.setenv("HOME", str(tmp_path))
    directory = tmp_path / ".phonon"
    directory.mkdir()
    (directory / "phonon.yml").write_text("certificate: demo\n")
    assert load_config() == Config(certificate="demo", telemetry_key="")


def test_load_explicit_path_case_insensitive_keys(tmp_path, clean_env):
    path = tmp_path / "conf.yml"
    path.write_text("Certificate: demo\n")
    config = load_config(path)
    assert config.certificate == "demo"
    assert config.telemetry_key == ""


def test_load_missing_certificate_is_empty(tmp_path, clean_env):
    path = tmp_path / "conf.yml"
    path.write_text("{}\n")
    assert load_config(path).certificate == ""


def test_environment_overrides_file(monkeypatch, tmp_path, clean_env):
    path = tmp_path / "conf.yml"
    path.write_text("certificate: demo\n")
    monkeypatch.setenv("PHONON_CERTIFICATE", "alpha")
    assert load_config(path).certificate == "alpha"


def test_load_invalid_yaml(tmp_path, clean_env):
    path = tmp_path / "conf.yml"
    path.write_text("certificate: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_load_non_mapping(tmp_path, clean_env):
    path = tmp_path / "conf.yml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_load_missing_explicit_file(tmp_path, clean_env):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yml")


def test_save_and_load_round_trip(tmp_path, clean_env):
    original = Config(certificate="demo", telemetry_key="")
    target = save_config(original, tmp_path / "nested" / "phonon.yml")
    assert target.is_file()
    assert load_config(target) == original


def test_save_to_default_location(monkeypatch, tmp_path, clean_env):
    monkeypatch.setenv("HOME", str(tmp_path))
    target = save_config(Config(certificate="demo"))
    assert target.parent == tmp_path / ".phonon"
    assert load_config().certificate == "demo"


def test_telemetry_key_installs_handler(tmp_path, clean_env, root_handlers):
    path = tmp_path / "conf.yml"
    path.write_text("telemetrykey: placeholder\n")
    config = load_config(path)
    load_config(path)
    assert config.telemetry_key == "placeholder"
    installed = [h for h in root_handlers.handlers if isinstance(h, TelemetryHandler)]
    assert len(installed) == 1
    assert installed[0].api_key == "placeholder"