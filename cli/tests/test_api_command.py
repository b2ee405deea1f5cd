from __future__ import annotations

from typer.testing import CliRunner

from zentao_cli import config, main
from zentao_cli.commands import api_cmd
from zentao_client import NetworkError, TranslationError


class _FakeClient:
    def __init__(self, response: bytes = b'{"status": "success"}', error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple] = []
        self.closed = False

    def request(self, method, path, body=None, *, params=None):
        self.calls.append((method, path, body, params))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self) -> None:
        self.closed = True


def _install(tmp_path, monkeypatch, fake: _FakeClient) -> None:
    def _config_dir(_: str) -> str:
        return str(tmp_path)

    monkeypatch.setattr(config, "user_config_dir", _config_dir)
    monkeypatch.setattr(api_cmd, "make_client", lambda cfg, **kwargs: fake)


def test_api_get_prints_json(tmp_path, monkeypatch) -> None:
    fake = _FakeClient()
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "get", "/products/1", "-p", "limit=5"])

    assert result.exit_code == 0, result.output
    assert "success" in result.output
    assert fake.calls == [("GET", "/products/1", None, {"limit": "5"})]
    assert fake.closed


def test_api_post_sends_json_data(tmp_path, monkeypatch) -> None:
    fake = _FakeClient()
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "post", "/products", "--data", '{"name": "Widget"}'])

    assert result.exit_code == 0, result.output
    assert fake.calls[0][0] == "POST"
    assert fake.calls[0][2] == {"name": "Widget"}


def test_api_post_rejects_invalid_json(tmp_path, monkeypatch) -> None:
    fake = _FakeClient()
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "post", "/products", "--data", "{name"])

    assert result.exit_code == 2
    assert fake.calls == []


def test_api_get_prints_non_json_body_raw(tmp_path, monkeypatch) -> None:
    fake = _FakeClient(response=b"<html>maintenance</html>")
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "get", "/products"])

    assert result.exit_code == 0
    assert "<html>maintenance</html>" in result.output


def test_api_untranslatable_path_exits_2(tmp_path, monkeypatch) -> None:
    fake = _FakeClient(error=TranslationError("GET", "/widgets"))
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "get", "/widgets"])

    assert result.exit_code == 2
    assert fake.closed


def test_api_network_error_exits_1(tmp_path, monkeypatch) -> None:
    fake = _FakeClient(error=NetworkError("connection refused"))
    _install(tmp_path, monkeypatch, fake)
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "delete", "/bugs/3"])

    assert result.exit_code == 1
    assert "connection refused" in result.output


def test_api_translate_shows_mapping() -> None:
    runner = CliRunner()
    result = runner.invoke(main.app, ["api", "translate", "GET", "/projects/123/executions"])
    assert result.exit_code == 0
    assert "?m=execution&f=browse" in result.output
    assert "project" in result.output
    assert "123" in result.output


def test_api_translate_unknown_path_exits_2() -> None:
    runner = CliRunner()
    result = runner.invoke(main.app, ["api", "translate", "GET", "/widgets/1"])
    assert result.exit_code == 2


def test_api_bad_timeout_env_exits_2(tmp_path, monkeypatch) -> None:
    def _config_dir(_: str) -> str:
        return str(tmp_path)

    monkeypatch.setattr(config, "user_config_dir", _config_dir)
    monkeypatch.setenv(config.ENV_TIMEOUT, "soon")
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "get", "/products"])

    assert result.exit_code == 2
    assert "invalid timeout" in result.output


def test_api_bad_auth_mode_in_file_exits_2(tmp_path, monkeypatch) -> None:
    def _config_dir(_: str) -> str:
        return str(tmp_path)

    monkeypatch.setattr(config, "user_config_dir", _config_dir)
    tmp_path.joinpath("config.toml").write_text('auth_mode = "oauth"\n', encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(main.app, ["api", "get", "/products"])

    assert result.exit_code == 2
    assert "unknown auth mode" in result.output
