"""Tests for quest_board.config INI loading and environment overrides."""

import configparser

import pytest

from quest_board.config import (
    ServerConfig,
    _load_from_ini,
    config,
    get_config_status,
    load_config,
    print_config_summary,
    reload_config,
    use_test_database,
)


@pytest.mark.unit
def test_defaults():
    cfg = ServerConfig()

    assert cfg.signup.waitlist_enabled is True
    assert cfg.signup.require_approval is False
    assert cfg.signup.form_token_ttl_minutes == 30
    assert cfg.signup.cancel_token_ttl_hours == 48
    assert cfg.rate_limit.max_attempts == 5
    assert cfg.rate_limit.window_minutes == 10
    assert cfg.email.transport == "log"


@pytest.mark.unit
def test_signup_env_overrides(monkeypatch):
    monkeypatch.setenv("QB_WAITLIST_ENABLED", "false")
    monkeypatch.setenv("QB_PLAYER_CANCEL_ENABLED", "no")
    monkeypatch.setenv("QB_REQUIRE_APPROVAL", "yes")
    monkeypatch.setenv("QB_ALLOWED_EMAIL_DOMAINS", "guild.test, example.org ,")
    monkeypatch.setenv("QB_BASE_URL", "https://quests.example.org")

    cfg = load_config()

    assert cfg.signup.waitlist_enabled is False
    assert cfg.signup.player_cancel_enabled is False
    assert cfg.signup.require_approval is True
    assert cfg.signup.allowed_email_domains == ["guild.test", "example.org"]
    assert cfg.signup.base_url == "https://quests.example.org"


@pytest.mark.unit
def test_rate_limit_and_email_env_overrides(monkeypatch):
    monkeypatch.setenv("QB_RATE_LIMIT_ENABLED", "off")
    monkeypatch.setenv("QB_RATE_LIMIT_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("QB_EMAIL_TRANSPORT", "HTTP")
    monkeypatch.setenv("QB_EMAIL_ENDPOINT", "https://mail.example.org/send")
    monkeypatch.setenv("QB_EMAIL_API_KEY", "k-123")

    cfg = load_config()

    assert cfg.rate_limit.enabled is False
    assert cfg.rate_limit.max_attempts == 3
    assert cfg.email.transport == "http"
    assert cfg.email.endpoint == "https://mail.example.org/send"
    assert cfg.email.api_key == "k-123"


@pytest.mark.unit
def test_invalid_enum_env_values_are_ignored(monkeypatch):
    monkeypatch.setenv("QB_EMAIL_TRANSPORT", "carrier-pigeon")
    monkeypatch.setenv("QB_LOG_FORMAT", "xml")

    cfg = load_config()

    assert cfg.email.transport in ("log", "http")
    assert cfg.logging.format in ("simple", "detailed", "json")


@pytest.mark.unit
def test_ini_sections_are_loaded():
    """Every section of server.ini maps onto its settings dataclass."""
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "server": {"host": "127.0.0.1", "port": "9001"},
            "security": {
                "production": "true",
                "admin_emails": "dm@example.org, Co-DM@example.org",
                "docs_enabled": "disabled",
            },
            "signup": {
                "waitlist_enabled": "false",
                "form_token_ttl_minutes": "15",
                "cancel_token_ttl_hours": "24",
            },
            "rate_limit": {"max_attempts": "7", "window_minutes": "5"},
            "email": {"transport": "http", "timeout_seconds": "2.5", "sender": "qb@example.org"},
        }
    )

    cfg = ServerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.server.host == "127.0.0.1"
    assert cfg.server.port == 9001
    assert cfg.is_production is True
    assert cfg.docs_should_be_enabled is False
    assert cfg.is_admin("co-dm@example.org")
    assert not cfg.is_admin("player@example.org")
    assert not cfg.is_admin(None)
    assert cfg.signup.waitlist_enabled is False
    assert cfg.signup.form_token_ttl_minutes == 15
    assert cfg.signup.cancel_token_ttl_hours == 24
    assert cfg.rate_limit.max_attempts == 7
    assert cfg.rate_limit.window_minutes == 5
    assert cfg.email.transport == "http"
    assert cfg.email.timeout_seconds == 2.5


@pytest.mark.unit
def test_docs_auto_follows_production():
    cfg = ServerConfig()
    assert cfg.docs_should_be_enabled is True

    cfg.security.production = True
    assert cfg.docs_should_be_enabled is False

    cfg.security.docs_enabled = "enabled"
    assert cfg.docs_should_be_enabled is True


@pytest.mark.unit
def test_reload_config_updates_singleton_in_place(monkeypatch):
    sections = ("server", "security", "database", "logging", "signup", "rate_limit", "email")
    original = {name: getattr(config, name) for name in sections}
    monkeypatch.setenv("QB_REQUIRE_APPROVAL", "true")
    try:
        reloaded = reload_config()
        assert reloaded is config
        assert config.signup.require_approval is True
    finally:
        for name, value in original.items():
            setattr(config, name, value)


@pytest.mark.unit
def test_use_test_database_restores_path(tmp_path):
    before = config.database.path

    with use_test_database(tmp_path / "x.db") as db_path:
        assert config.database.absolute_path == db_path

    assert config.database.path == before


@pytest.mark.unit
def test_config_status_and_summary(capsys):
    status = get_config_status()
    print_config_summary()

    assert {"config_file_exists", "waitlist_enabled", "email_transport"} <= set(status)
    assert "SERVER CONFIGURATION" in capsys.readouterr().out
