from __future__ import annotations

import typer

from .commands import api_cmd, auth_cmd, settings_cmd
from .logging_ import LogConfig, setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="zentao",
        help="ZenTao API CLI",
        no_args_is_help=True,
    )

    app.add_typer(settings_cmd.app, name="settings")
    app.add_typer(auth_cmd.app, name="auth")
    app.add_typer(api_cmd.app, name="api")

    @app.callback()
    def _main(
            ctx: typer.Context,
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
            json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines."),
    ):
        log_cfg = LogConfig.from_env(verbose=verbose, json_logs=json_logs)
        ctx.obj = {"logger": setup_logging(log_cfg)}

    return app


app = _build_app()
