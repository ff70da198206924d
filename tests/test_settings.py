from storefinder.config.settings import Settings, get_settings


def test_packaged_defaults_load():
    get_settings.cache_clear()
    settings = get_settings()

    assert settings.discovery.default_max_radius_km == 10
    assert settings.discovery.region_delta_divisor == 60
    assert settings.cache.ttl_seconds.medium == 300
    assert settings.ttl("very_long") == 3600
    assert settings.notifications.max_retries == 1


def test_env_overrides_are_applied(monkeypatch):
    monkeypatch.setenv("RESEND_API_KEY", "re_from_env")
    monkeypatch.setenv("STOREFINDER_ADMIN_EMAIL", "admin@example.com")
    monkeypatch.setenv("STOREFINDER_LOG_LEVEL", "debug")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.notifications.api_key == "re_from_env"
        assert settings.notifications.admin_email == "admin@example.com"
        assert settings.app.log_level == "debug"
    finally:
        get_settings.cache_clear()


def test_external_config_file(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("discovery:\n  default_max_radius_km: 25\n", encoding="utf-8")
    monkeypatch.setenv("STOREFINDER_CONFIG_PATH", str(path))
    get_settings.cache_clear()
    try:
        assert get_settings().discovery.default_max_radius_km == 25
    finally:
        get_settings.cache_clear()


def test_model_defaults_match_packaged_yaml():
    get_settings.cache_clear()
    assert Settings().discovery == get_settings().discovery
