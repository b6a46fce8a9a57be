from fleet_monitor.config import Settings, load_settings


def test_defaults():
    config = Settings()
    assert config.tick_interval_seconds == 1.5
    assert config.allow_reassign is False
    assert config.corridor_width_m == 500


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FLEET_ALLOW_REASSIGN", "true")
    monkeypatch.setenv("FLEET_MAX_ALERTS", "10")
    config = Settings()
    assert config.allow_reassign is True
    assert config.max_alerts == 10


def test_load_settings_reads_env_file(tmp_path, monkeypatch):
    # Registered first so the value written by the .env file is removed afterwards
    monkeypatch.setenv("FLEET_CORRIDOR_WIDTH_M", "0")
    monkeypatch.delenv("FLEET_CORRIDOR_WIDTH_M")
    env_file = tmp_path / ".env"
    env_file.write_text("FLEET_CORRIDOR_WIDTH_M=750\n")

    config = load_settings(str(env_file))

    assert config.corridor_width_m == 750
