from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from zentao_client import AuthMode

from . import console

APP_NAME = "zentao"
CONFIG_FILENAME = "config.toml"
DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT_S = 15.0

ENV_BASE_URL = "ZENTAO_BASE_URL"
ENV_AUTH_MODE = "ZENTAO_AUTH_MODE"
ENV_APP_CODE = "ZENTAO_APP_CODE"
ENV_APP_KEY = "ZENTAO_APP_KEY"
ENV_TIMEOUT = "ZENTAO_TIMEOUT"

_WARNED_BASE_URL_SCHEME = False


@dataclass
class AppCredentials:
    code: str = ""
    key: str = ""


@dataclass
class SessionConfig:
    name: str = ""
    session_id: str = ""
    token: str = ""


@dataclass
class AppConfig:
    base_url: str
    auth_mode: AuthMode = AuthMode.APP
    app: AppCredentials = field(default_factory=AppCredentials)
    session: SessionConfig = field(default_factory=SessionConfig)
    timeout_s: float = DEFAULT_TIMEOUT_S


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig(base_url=DEFAULT_BASE_URL)


def normalize_base_url(raw: str | None, *, warn: bool = False) -> str:
    value = (raw or "").strip()
    if not value:
        return ""
    value = value.rstrip("/")
    lowered = value.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return value

    host = value.split("/", 1)[0]
    host = host.split(":", 1)[0].lower()
    if host in {"localhost", "127.0.0.1", "0.0.0.0"}:
        scheme = "http://"
    else:
        scheme = "https://"

    normalized = f"{scheme}{value}"
    if warn:
        _warn_missing_scheme(normalized)
    return normalized


def _warn_missing_scheme(normalized: str) -> None:
    global _WARNED_BASE_URL_SCHEME
    if _WARNED_BASE_URL_SCHEME:
        return
    if not _is_interactive():
        return
    console.warn(f"base_url missing scheme, assuming {normalized}")
    _WARNED_BASE_URL_SCHEME = True


def _is_interactive() -> bool:
    import sys
    return bool(sys.stderr.isatty() or sys.stdout.isatty())


def parse_auth_mode(raw: Any, default: AuthMode = AuthMode.APP) -> AuthMode:
    value = str(raw or "").strip().lower()
    if not value:
        return default
    try:
        return AuthMode(value)
    except ValueError:
        raise ValueError(f"unknown auth mode {raw!r}, expected 'app' or 'session'") from None


def parse_timeout(raw: Any, default: float = DEFAULT_TIMEOUT_S) -> float:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"invalid timeout {raw!r}") from None
    if value <= 0:
        raise ValueError("timeout must be positive")
    return value


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return {
        "base_url": cfg.base_url,
        "auth_mode": cfg.auth_mode.value,
        "timeout_s": cfg.timeout_s,
        "app": {"code": cfg.app.code, "key": cfg.app.key},
        "session": {
            "name": cfg.session.name,
            "session_id": cfg.session.session_id,
            "token": cfg.session.token,
        },
    }


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name)
    return raw if isinstance(raw, dict) else {}


def from_toml(data: dict[str, Any]) -> AppConfig:
    base_url = normalize_base_url(str(data.get("base_url") or ""), warn=True)
    app_raw = _section(data, "app")
    session_raw = _section(data, "session")
    return AppConfig(
        base_url=base_url or DEFAULT_BASE_URL,
        auth_mode=parse_auth_mode(data.get("auth_mode")),
        app=AppCredentials(
            code=str(app_raw.get("code") or ""),
            key=str(app_raw.get("key") or ""),
        ),
        session=SessionConfig(
            name=str(session_raw.get("name") or ""),
            session_id=str(session_raw.get("session_id") or ""),
            token=str(session_raw.get("token") or ""),
        ),
        timeout_s=parse_timeout(data.get("timeout_s")),
    )


def _read_config_file() -> dict[str, Any] | None:
    try:
        with open(config_path(), "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return None


def load_config() -> AppConfig:
    data = _read_config_file()
    if data is None:
        return default_config()
    return from_toml(data)


def apply_profile(cfg: AppConfig, profile: str | None) -> AppConfig:
    """Overlay `[profiles.<name>]` from the config file, when present."""
    if not profile:
        return cfg
    data = _read_config_file() or {}
    prof = _section(_section(data, "profiles"), profile)
    if not prof:
        return cfg

    app_raw = _section(prof, "app")
    base_url = normalize_base_url(str(prof.get("base_url") or ""), warn=True)
    return replace(
        cfg,
        base_url=base_url or cfg.base_url,
        auth_mode=parse_auth_mode(prof.get("auth_mode"), cfg.auth_mode),
        app=AppCredentials(
            code=str(app_raw.get("code") or cfg.app.code),
            key=str(app_raw.get("key") or cfg.app.key),
        ),
        timeout_s=parse_timeout(prof.get("timeout_s"), cfg.timeout_s),
    )


def apply_env(cfg: AppConfig) -> AppConfig:
    """Environment variables win over the config file."""
    env = os.environ
    base_url = normalize_base_url(env.get(ENV_BASE_URL), warn=True)
    return replace(
        cfg,
        base_url=base_url or cfg.base_url,
        auth_mode=parse_auth_mode(env.get(ENV_AUTH_MODE), cfg.auth_mode),
        app=AppCredentials(
            code=env.get(ENV_APP_CODE) or cfg.app.code,
            key=env.get(ENV_APP_KEY) or cfg.app.key,
        ),
        timeout_s=parse_timeout(env.get(ENV_TIMEOUT), cfg.timeout_s),
    )


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
