from __future__ import annotations

import json
from typing import Any

import typer

from zentao_client import ApiError, NetworkError, TranslationError, translate

from .. import console
from ..config import load_config
from ..http import make_client

app = typer.Typer(help="Call the ZenTao API with REST-style paths.")

_PARAM_OPT = typer.Option(None, "--param", "-p", help="Extra query parameter as key=value (repeatable).")
_BASE_URL_OPT = typer.Option(None, "--base-url", help="Override base URL.")
_PROFILE_OPT = typer.Option(None, "--profile", help="Config profile to use.")


def _parse_params(raw: list[str] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in raw or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            console.err(f"Invalid --param {item!r}, expected key=value.")
            raise typer.Exit(code=2)
        params[key.strip()] = value
    return params


def _parse_data(data: str | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except ValueError as e:
        console.err(f"--data is not valid JSON: {e}")
        raise typer.Exit(code=2)


def _call(
    ctx: typer.Context,
    method: str,
    path: str,
    *,
    data: str | None,
    params: list[str] | None,
    base_url: str | None,
    profile: str | None,
) -> None:
    body = _parse_data(data)
    extra = _parse_params(params)
    try:
        client = make_client(
            load_config(), profile=profile, base_url_override=base_url, logger=(ctx.obj or {}).get("logger")
        )
    except ValueError as e:
        console.err(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)
    try:
        resp = client.request(method, path, body, params=extra)
    except TranslationError as e:
        console.err(str(e))
        raise typer.Exit(code=2)
    except (ApiError, NetworkError) as e:
        console.err(f"{method} {path} failed: {e}")
        raise typer.Exit(code=1)
    finally:
        client.close()
    console.print_response(resp)


@app.command("get")
def get(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="REST path like /products/1."),
    params: list[str] | None = _PARAM_OPT,
    base_url: str | None = _BASE_URL_OPT,
    profile: str | None = _PROFILE_OPT,
):
    _call(ctx, "GET", path, data=None, params=params, base_url=base_url, profile=profile)


@app.command("delete")
def delete(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="REST path like /bugs/12."),
    params: list[str] | None = _PARAM_OPT,
    base_url: str | None = _BASE_URL_OPT,
    profile: str | None = _PROFILE_OPT,
):
    _call(ctx, "DELETE", path, data=None, params=params, base_url=base_url, profile=profile)


@app.command("post")
def post(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="REST path like /products."),
    data: str | None = typer.Option(None, "--data", "-d", help="JSON request body."),
    params: list[str] | None = _PARAM_OPT,
    base_url: str | None = _BASE_URL_OPT,
    profile: str | None = _PROFILE_OPT,
):
    _call(ctx, "POST", path, data=data, params=params, base_url=base_url, profile=profile)


@app.command("put")
def put(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="REST path like /products/1."),
    data: str | None = typer.Option(None, "--data", "-d", help="JSON request body."),
    params: list[str] | None = _PARAM_OPT,
    base_url: str | None = _BASE_URL_OPT,
    profile: str | None = _PROFILE_OPT,
):
    _call(ctx, "PUT", path, data=data, params=params, base_url=base_url, profile=profile)


@app.command("translate")
def translate_path(
    method: str = typer.Argument(..., help="HTTP method (GET, POST, PUT, DELETE)."),
    path: str = typer.Argument(..., help="REST path like /projects/1/executions."),
):
    """Show the ZenTao module/function a REST path maps to, without calling it."""
    try:
        call = translate(method, path)
    except TranslationError as e:
        console.err(str(e))
        raise typer.Exit(code=2)

    rows = [("query", call.query), ("module", call.module), ("function", call.function)]
    rows.extend((f"param {key}", value) for key, value in sorted(call.params.items()))
    console.print_pairs(rows)
