from __future__ import annotations

import os
from typing import Callable

import typer

from .. import console
from ..config import (
    AppConfig,
    config_path,
    default_config,
    load_config,
    normalize_base_url,
    parse_auth_mode,
    parse_timeout,
    save_config,
)

app = typer.Typer(help="Manage local CLI settings (~/.config/zentao/config.toml).")


def _mask(value: str) -> str:
    return "(set)" if value else "(empty)"


_SETTINGS: dict[str, Callable[[AppConfig], str]] = {
    "base_url": lambda cfg: cfg.base_url,
    "auth_mode": lambda cfg: cfg.auth_mode.value,
    "timeout_s": lambda cfg: str(cfg.timeout_s),
    "app_code": lambda cfg: cfg.app.code or "(empty)",
    "app_key": lambda cfg: _mask(cfg.app.key),
    "session": lambda cfg: _mask(cfg.session.session_id),
    "session_token": lambda cfg: _mask(cfg.session.token),
}


@app.command("init")
def init_settings(
        force: bool = typer.Option(False, "--force", help="Overwrite existing config."),
        base_url: str = typer.Option(
            ...,
            "--base-url",
            prompt="ZenTao base URL",
            help="ZenTao API base URL like http://127.0.0.1:8080/api.php",
        ),
        auth_mode: str = typer.Option("app", "--auth-mode", help="Authentication mode: app or session."),
        timeout_s: str | None = typer.Option(None, "--timeout", help="HTTP timeout in seconds."),
):
    path = config_path()
    if os.path.exists(path) and not force:
        console.info(f"Config already exists: {path}")
        console.info("Use --force to overwrite.")
        return

    cfg = default_config()
    cfg.base_url = normalize_base_url(base_url, warn=True)
    if not cfg.base_url:
        console.err("Base URL cannot be empty.")
        raise typer.Exit(code=2)
    try:
        cfg.auth_mode = parse_auth_mode(auth_mode)
        cfg.timeout_s = parse_timeout(timeout_s, cfg.timeout_s)
    except ValueError as e:
        console.err(str(e))
        raise typer.Exit(code=2)
    console.ok(f"Config written: {save_config(cfg)}")


@app.command("show")
def show_settings():
    """Print every setting; secrets are shown only as set/empty."""
    cfg = load_config()
    console.print_pairs([(name, read(cfg)) for name, read in _SETTINGS.items()])


@app.command("get")
def get_setting(
        key: str = typer.Argument(..., help=f"Setting key ({', '.join(_SETTINGS)})."),
):
    read = _SETTINGS.get(key.strip().lower())
    if read is None:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=2)
    console.console.print(read(load_config()), markup=False)


@app.command("set")
def set_setting(
        base_url: str | None = typer.Option(None, "--base-url", help="Set ZenTao base URL."),
        auth_mode: str | None = typer.Option(None, "--auth-mode", help="Set authentication mode (app or session)."),
        timeout_s: str | None = typer.Option(None, "--timeout", help="Set HTTP timeout in seconds."),
):
    cfg = load_config()
    try:
        if base_url is not None:
            cfg.base_url = normalize_base_url(base_url, warn=True) or cfg.base_url
        if auth_mode is not None:
            cfg.auth_mode = parse_auth_mode(auth_mode)
        if timeout_s is not None:
            cfg.timeout_s = parse_timeout(timeout_s)
    except ValueError as e:
        console.err(str(e))
        raise typer.Exit(code=2)
    console.ok(f"Settings updated: {save_config(cfg)}")
