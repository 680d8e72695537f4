from till import config
from till.config import Settings, get_settings, load_settings, reset_settings


def test_defaults_without_file(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings == Settings()
    assert settings.range_size == 100
    assert settings.poll_interval_ms == 100


def test_yaml_overrides(tmp_path):
    path = tmp_path / "platform.yaml"
    path.write_text("range_size: 50\nkill_timeout_ms: 1500\ncommand_timeout_seconds: 2.5\n")

    settings = load_settings(path)

    assert settings.range_size == 50
    assert settings.kill_timeout_ms == 1500
    assert settings.command_timeout_seconds == 2.5
    assert settings.port_base == config.DEFAULT_PORT_BASE


def test_unknown_and_invalid_keys_are_ignored(tmp_path):
    path = tmp_path / "platform.yaml"
    path.write_text("colour: blue\nrange_size: lots\nmax_range_attempts: 7\n")

    settings = load_settings(path)

    assert settings.range_size == 100
    assert settings.max_range_attempts == 7
    assert not hasattr(settings, "colour")


def test_malformed_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "platform.yaml"
    path.write_text("range_size: [unclosed\n")
    assert load_settings(path) == Settings()


def test_non_mapping_yaml_is_ignored(tmp_path):
    path = tmp_path / "platform.yaml"
    path.write_text("- 1\n- 2\n")
    assert load_settings(path) == Settings()


def test_get_settings_reads_env_path_and_caches(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("conflict_display_limit: 3\n")
    monkeypatch.setenv(config.SETTINGS_ENV_VAR, str(path))
    reset_settings()

    first = get_settings()
    path.write_text("conflict_display_limit: 9\n")

    assert first.conflict_display_limit == 3
    assert get_settings() is first

    reset_settings()
    assert get_settings().conflict_display_limit == 9


def test_default_settings_path_under_home(monkeypatch):
    monkeypatch.delenv(config.SETTINGS_ENV_VAR, raising=False)
    path = config.default_settings_path()
    assert path.parts[-3:] == (".till", "config", "platform.yaml")
