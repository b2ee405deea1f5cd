from __future__ import annotations

import typer

from zentao_client import AuthError, AuthMode, NetworkError, ZentaoClient

from .. import console
from ..config import AppConfig, AppCredentials, SessionConfig, load_config, save_config
from ..http import make_client

app = typer.Typer(help="Auth commands.")


def _load_config() -> AppConfig:
    try:
        return load_config()
    except ValueError as e:
        console.err(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)


def _client_for(ctx: typer.Context, cfg: AppConfig, base_url: str | None) -> ZentaoClient:
    try:
        return make_client(cfg, base_url_override=base_url, logger=(ctx.obj or {}).get("logger"))
    except ValueError as e:
        console.err(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)


@app.command("app")
def set_app_credentials(
    code: str = typer.Option(..., "--code", prompt=True, help="ZenTao application code."),
    key: str = typer.Option(..., "--key", prompt=True, hide_input=True, help="ZenTao application key."),
):
    """Store app credentials; requests are then signed with code/time/token."""
    cfg = _load_config()
    cfg.app = AppCredentials(code=code.strip(), key=key.strip())
    cfg.auth_mode = AuthMode.APP
    save_path = save_config(cfg)
    console.ok(f"App credentials saved to {save_path}.")


@app.command("login")
def login(
    ctx: typer.Context,
    account: str = typer.Option(..., "--account", prompt=True, help="ZenTao account."),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Password for login."),
    base_url: str | None = typer.Option(None, "--base-url", help="Override base URL."),
):
    """Open a ZenTao session and log in with it."""
    cfg = _load_config()
    client = _client_for(ctx, cfg, base_url)
    try:
        session = client.acquire_session()
        client.login(account, password)
    except (AuthError, NetworkError) as e:
        console.err(f"Login failed: {e}")
        raise typer.Exit(code=2)
    finally:
        client.close()

    cfg.session = SessionConfig(name=session.name, session_id=session.session_id, token=cfg.session.token)
    cfg.auth_mode = AuthMode.SESSION
    save_path = save_config(cfg)
    console.ok(f"Login successful. Session saved to {save_path}.")


@app.command("token")
def issue_token(
    ctx: typer.Context,
    account: str = typer.Option(..., "--account", prompt=True, help="ZenTao account."),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Password for login."),
    base_url: str | None = typer.Option(None, "--base-url", help="Override base URL."),
):
    """Obtain a session token from POST /tokens."""
    cfg = _load_config()
    client = _client_for(ctx, cfg, base_url)
    try:
        token = client.issue_token(account, password)
    except (AuthError, NetworkError) as e:
        console.err(f"Token request failed: {e}")
        raise typer.Exit(code=2)
    finally:
        client.close()

    cfg.session = SessionConfig(name=cfg.session.name, session_id=cfg.session.session_id, token=token)
    cfg.auth_mode = AuthMode.SESSION
    save_path = save_config(cfg)
    console.ok(f"Token saved to {save_path}.")


@app.command("status")
def status():
    cfg = _load_config()
    if cfg.auth_mode is AuthMode.APP:
        configured = bool(cfg.app.code and cfg.app.key)
    else:
        configured = bool((cfg.session.name and cfg.session.session_id) or cfg.session.token)
    state = "configured" if configured else "not configured"
    console.console.print(f"auth_mode={cfg.auth_mode.value} credentials={state}")


@app.command("logout", help="Clear stored app credentials and session.")
def logout():
    cfg = _load_config()
    cfg.app = AppCredentials()
    cfg.session = SessionConfig()
    save_path = save_config(cfg)
    console.ok(f"Credentials cleared from {save_path}.")
