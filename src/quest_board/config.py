"""
Server configuration management.

This module handles loading and accessing server configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The ServerConfig
dataclass provides typed access to all settings.

Usage:
    from quest_board.config import config

    print(config.signup.waitlist_enabled)
    print(config.rate_limit.max_attempts)

Environment Variable Mapping:
    QB_HOST                    -> server.host
    QB_PORT                    -> server.port
    QB_PRODUCTION              -> security.production
    QB_CORS_ORIGINS            -> security.cors_origins
    QB_ADMIN_EMAILS            -> security.admin_emails
    QB_DB_PATH                 -> database.path
    QB_LOG_LEVEL               -> logging.level
    QB_LOG_FORMAT              -> logging.format
    QB_WAITLIST_ENABLED        -> signup.waitlist_enabled
    QB_PLAYER_CANCEL_ENABLED   -> signup.player_cancel_enabled
    QB_REQUIRE_APPROVAL        -> signup.require_approval
    QB_ALLOWED_EMAIL_DOMAINS   -> signup.allowed_email_domains
    QB_BASE_URL                -> signup.base_url
    QB_RATE_LIMIT_ENABLED      -> rate_limit.enabled
    QB_RATE_LIMIT_MAX_ATTEMPTS -> rate_limit.max_attempts
    QB_EMAIL_TRANSPORT         -> email.transport
    QB_EMAIL_ENDPOINT          -> email.endpoint
    QB_EMAIL_API_KEY           -> email.api_key
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    production: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    docs_enabled: Literal["auto", "enabled", "disabled"] = "auto"
    admin_emails: list[str] = field(default_factory=list)


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/quest_board.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class SignupSettings:
    """Sign-up workflow feature flags and token lifetimes."""

    waitlist_enabled: bool = True
    player_cancel_enabled: bool = True
    require_approval: bool = False
    allowed_email_domains: list[str] = field(default_factory=list)
    form_token_ttl_minutes: int = 30
    cancel_token_ttl_hours: int = 48
    base_url: str = "http://localhost:3000"


@dataclass
class RateLimitSettings:
    """Sign-up attempt throttling per player email."""

    enabled: bool = True
    max_attempts: int = 5
    window_minutes: int = 10
    prune_after_minutes: int = 15


@dataclass
class EmailSettings:
    """Outbound email transport configuration."""

    transport: Literal["log", "http"] = "log"
    endpoint: str = ""
    api_key: str = ""
    sender: str = "Quest Board <no-reply@localhost>"
    timeout_seconds: float = 5.0


@dataclass
class ServerConfig:
    """
    Complete server configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    signup: SignupSettings = field(default_factory=SignupSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    email: EmailSettings = field(default_factory=EmailSettings)

    @property
    def is_production(self) -> bool:
        """Convenience property for production mode check."""
        return self.security.production

    @property
    def docs_should_be_enabled(self) -> bool:
        """Determine if API docs should be enabled based on settings."""
        if self.security.docs_enabled == "enabled":
            return True
        if self.security.docs_enabled == "disabled":
            return False
        return not self.is_production

    def is_admin(self, email: str | None) -> bool:
        """Return True when ``email`` is listed in ``security.admin_emails``."""
        if not email:
            return False
        admins = {item.strip().lower() for item in self.security.admin_emails}
        return email.strip().lower() in admins


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_ini(parser: configparser.ConfigParser, cfg: ServerConfig) -> None:
    """Load configuration from parsed INI file into ServerConfig."""
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    if parser.has_section("security"):
        if parser.has_option("security", "production"):
            cfg.security.production = _parse_bool(parser.get("security", "production"))
        if parser.has_option("security", "cors_origins"):
            cfg.security.cors_origins = _parse_list(parser.get("security", "cors_origins"))
        if parser.has_option("security", "docs_enabled"):
            val = parser.get("security", "docs_enabled").lower()
            if val in ("auto", "enabled", "disabled"):
                cfg.security.docs_enabled = val  # type: ignore[assignment]
        if parser.has_option("security", "admin_emails"):
            cfg.security.admin_emails = _parse_list(parser.get("security", "admin_emails"))

    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]

    if parser.has_section("signup"):
        if parser.has_option("signup", "waitlist_enabled"):
            cfg.signup.waitlist_enabled = _parse_bool(parser.get("signup", "waitlist_enabled"))
        if parser.has_option("signup", "player_cancel_enabled"):
            cfg.signup.player_cancel_enabled = _parse_bool(
                parser.get("signup", "player_cancel_enabled")
            )
        if parser.has_option("signup", "require_approval"):
            cfg.signup.require_approval = _parse_bool(parser.get("signup", "require_approval"))
        if parser.has_option("signup", "allowed_email_domains"):
            cfg.signup.allowed_email_domains = _parse_list(
                parser.get("signup", "allowed_email_domains")
            )
        if parser.has_option("signup", "form_token_ttl_minutes"):
            cfg.signup.form_token_ttl_minutes = parser.getint("signup", "form_token_ttl_minutes")
        if parser.has_option("signup", "cancel_token_ttl_hours"):
            cfg.signup.cancel_token_ttl_hours = parser.getint("signup", "cancel_token_ttl_hours")
        if parser.has_option("signup", "base_url"):
            cfg.signup.base_url = parser.get("signup", "base_url")

    if parser.has_section("rate_limit"):
        if parser.has_option("rate_limit", "enabled"):
            cfg.rate_limit.enabled = _parse_bool(parser.get("rate_limit", "enabled"))
        if parser.has_option("rate_limit", "max_attempts"):
            cfg.rate_limit.max_attempts = parser.getint("rate_limit", "max_attempts")
        if parser.has_option("rate_limit", "window_minutes"):
            cfg.rate_limit.window_minutes = parser.getint("rate_limit", "window_minutes")
        if parser.has_option("rate_limit", "prune_after_minutes"):
            cfg.rate_limit.prune_after_minutes = parser.getint(
                "rate_limit", "prune_after_minutes"
            )

    if parser.has_section("email"):
        if parser.has_option("email", "transport"):
            val = parser.get("email", "transport").lower()
            if val in ("log", "http"):
                cfg.email.transport = val  # type: ignore[assignment]
        if parser.has_option("email", "endpoint"):
            cfg.email.endpoint = parser.get("email", "endpoint")
        if parser.has_option("email", "api_key"):
            cfg.email.api_key = parser.get("email", "api_key")
        if parser.has_option("email", "sender"):
            cfg.email.sender = parser.get("email", "sender")
        if parser.has_option("email", "timeout_seconds"):
            cfg.email.timeout_seconds = parser.getfloat("email", "timeout_seconds")


def _apply_env_overrides(cfg: ServerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_host := os.getenv("QB_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("QB_PORT"):
        cfg.server.port = int(env_port)

    if env_production := os.getenv("QB_PRODUCTION"):
        cfg.security.production = _parse_bool(env_production)
    if env_cors := os.getenv("QB_CORS_ORIGINS"):
        cfg.security.cors_origins = _parse_list(env_cors)
    if env_admins := os.getenv("QB_ADMIN_EMAILS"):
        cfg.security.admin_emails = _parse_list(env_admins)

    if env_db := os.getenv("QB_DB_PATH"):
        cfg.database.path = env_db

    if env_log := os.getenv("QB_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("QB_LOG_FORMAT"):
        if env_log_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]

    if env_waitlist := os.getenv("QB_WAITLIST_ENABLED"):
        cfg.signup.waitlist_enabled = _parse_bool(env_waitlist)
    if env_cancel := os.getenv("QB_PLAYER_CANCEL_ENABLED"):
        cfg.signup.player_cancel_enabled = _parse_bool(env_cancel)
    if env_approval := os.getenv("QB_REQUIRE_APPROVAL"):
        cfg.signup.require_approval = _parse_bool(env_approval)
    if env_domains := os.getenv("QB_ALLOWED_EMAIL_DOMAINS"):
        cfg.signup.allowed_email_domains = _parse_list(env_domains)
    if env_base_url := os.getenv("QB_BASE_URL"):
        cfg.signup.base_url = env_base_url

    if env_rl := os.getenv("QB_RATE_LIMIT_ENABLED"):
        cfg.rate_limit.enabled = _parse_bool(env_rl)
    if env_rl_max := os.getenv("QB_RATE_LIMIT_MAX_ATTEMPTS"):
        cfg.rate_limit.max_attempts = int(env_rl_max)

    if env_transport := os.getenv("QB_EMAIL_TRANSPORT"):
        if env_transport.lower() in ("log", "http"):
            cfg.email.transport = env_transport.lower()  # type: ignore[assignment]
    if env_endpoint := os.getenv("QB_EMAIL_ENDPOINT"):
        cfg.email.endpoint = env_endpoint
    if env_api_key := os.getenv("QB_EMAIL_API_KEY"):
        cfg.email.api_key = env_api_key


def load_config() -> ServerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        ServerConfig: Fully populated configuration object.
    """
    cfg = ServerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "ServerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton in place so modules that
    imported ``config`` earlier observe the new values.

    Returns:
        ServerConfig: The reloaded configuration.
    """
    fresh = load_config()
    for section in ("server", "security", "database", "logging", "signup", "rate_limit", "email"):
        setattr(config, section, getattr(fresh, section))
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging and the health endpoint.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "production_mode": config.is_production,
        "docs_enabled": config.docs_should_be_enabled,
        "waitlist_enabled": config.signup.waitlist_enabled,
        "email_transport": config.email.transport,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("SERVER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to server.ini for production)")
    print("-" * 60)
    print(f"Server:      {config.server.host}:{config.server.port}")
    print(f"Production:  {config.is_production}")
    print(f"Database:    {config.database.absolute_path}")
    print(f"Waitlist:    {config.signup.waitlist_enabled}")
    print(f"Approval:    {config.signup.require_approval}")
    print(f"Email:       {config.email.transport}")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from quest_board.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                schema.init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
