"""Application configuration accessors.

Centralizes environment variable parsing & defaults. Every setting is read
lazily through a small accessor so tests can monkeypatch the environment
without rebuilding module state.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List

APP_NAME = "electivepro"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Multi-tenant elective course and exchange program selection"

DEFAULT_DB_PATH = "electivepro.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ROOT_DOMAIN = "electivepro.net"
DEFAULT_MAIN_HOST = "app.electivepro.net"
DEFAULT_DEV_HOSTS = "localhost,127.0.0.1"
DEFAULT_SUBDOMAIN_CACHE_TTL = 300
DEFAULT_STORAGE_DIR = "storage"
DEFAULT_MAX_UPLOAD_MB = 10
DEFAULT_LOCALE = "en"
DEFAULT_SMTP_PORT = 587
_TRUE = {"1", "true", "yes", "on"}


def _raw_env(name: str, default: str | None = None) -> str | None:
    val = os.getenv(name)
    return val if val is not None else default


def _clean_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_bool(name: str, default: bool = False) -> bool:
    raw = _raw_env(name, str(default).lower())
    if raw is None:
        return default
    return raw.lower() in _TRUE


def env_int(name: str, default: int) -> int:
    raw = _clean_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def data_dir() -> str | None:
    return _clean_env("ELECTIVEPRO_DATA_DIR")


def get_db_path() -> str:
    raw = _raw_env("ELECTIVEPRO_DB_PATH", DEFAULT_DB_PATH) or DEFAULT_DB_PATH
    if raw != ":memory:" and not os.path.isabs(raw):
        root = data_dir()
        if root:
            return os.path.join(root, raw)
    return raw


def log_level_name() -> str:
    return (_raw_env("ELECTIVEPRO_LOG_LEVEL", DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper()


def secret_key() -> str | None:
    """Flask SECRET_KEY; also the root of auth link encryption."""
    return _clean_env("ELECTIVEPRO_SECRET_KEY")


def root_domain() -> str:
    return (_clean_env("ELECTIVEPRO_ROOT_DOMAIN") or DEFAULT_ROOT_DOMAIN).lower()


def main_host() -> str:
    """Host serving admin and super-admin portals (e.g. app.electivepro.net)."""
    return (_clean_env("ELECTIVEPRO_MAIN_HOST") or DEFAULT_MAIN_HOST).lower()


def dev_hosts() -> List[str]:
    raw = _raw_env("ELECTIVEPRO_DEV_HOSTS", DEFAULT_DEV_HOSTS) or ""
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def subdomain_cache_ttl() -> int:
    return max(0, env_int("ELECTIVEPRO_SUBDOMAIN_CACHE_TTL", DEFAULT_SUBDOMAIN_CACHE_TTL))


def storage_dir() -> str:
    raw = _clean_env("ELECTIVEPRO_STORAGE_DIR") or DEFAULT_STORAGE_DIR
    if not os.path.isabs(raw):
        root = data_dir()
        if root:
            return os.path.join(root, raw)
    return raw


def max_upload_bytes() -> int:
    return max(1, env_int("ELECTIVEPRO_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB)) * 1024 * 1024


def default_locale() -> str:
    return (_clean_env("ELECTIVEPRO_DEFAULT_LOCALE") or DEFAULT_LOCALE).lower()


def super_admin_bootstrap_email() -> str | None:
    """Environment Variable: ELECTIVEPRO_SUPER_ADMIN_EMAIL (no default)."""
    return _clean_env("ELECTIVEPRO_SUPER_ADMIN_EMAIL")


def super_admin_bootstrap_password() -> str | None:
    """Environment Variable: ELECTIVEPRO_SUPER_ADMIN_PASSWORD (no default)."""
    return _raw_env("ELECTIVEPRO_SUPER_ADMIN_PASSWORD")


def smtp_host() -> str | None:
    """Environment Variable: ELECTIVEPRO_SMTP_HOST (unset disables outgoing mail)."""
    return _clean_env("ELECTIVEPRO_SMTP_HOST")


def smtp_port() -> int:
    return env_int("ELECTIVEPRO_SMTP_PORT", DEFAULT_SMTP_PORT)


def smtp_username() -> str | None:
    return _clean_env("ELECTIVEPRO_SMTP_USERNAME")


def smtp_password() -> str | None:
    return _raw_env("ELECTIVEPRO_SMTP_PASSWORD")


def smtp_use_tls() -> bool:
    return env_bool("ELECTIVEPRO_SMTP_TLS", True)


def mail_from() -> str:
    return _clean_env("ELECTIVEPRO_MAIL_FROM") or f"no-reply@{root_domain()}"


def mail_configured() -> bool:
    return smtp_host() is not None


@lru_cache(maxsize=1)
def metadata() -> dict:
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": APP_DESCRIPTION,
    }


def summarize_runtime_config() -> dict:
    return {
        "db_path": get_db_path(),
        "log_level": log_level_name(),
        "root_domain": root_domain(),
        "main_host": main_host(),
        "storage_dir": storage_dir(),
    }


__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
    "env_bool",
    "env_int",
    "data_dir",
    "get_db_path",
    "log_level_name",
    "secret_key",
    "root_domain",
    "main_host",
    "dev_hosts",
    "subdomain_cache_ttl",
    "storage_dir",
    "max_upload_bytes",
    "default_locale",
    "super_admin_bootstrap_email",
    "super_admin_bootstrap_password",
    "smtp_host",
    "smtp_port",
    "smtp_username",
    "smtp_password",
    "smtp_use_tls",
    "mail_from",
    "mail_configured",
    "metadata",
    "summarize_runtime_config",
]
