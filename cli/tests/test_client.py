from __future__ import annotations

import json
import threading

import httpx
import pytest

from zentao_client import (
    AuthError,
    AuthMode,
    ClientConfig,
    NetworkError,
    TranslationError,
    ZentaoClient,
)
from zentao_client.tokens import generate_token

BASE_URL = "http://zentao.test/api.php"


class _FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)


def _client(handler, *, code: str = "test_code", key: str = "test_key", clock=None, **cfg) -> ZentaoClient:
    kwargs = {"transport": httpx.MockTransport(handler)}
    if clock is not None:
        kwargs["clock"] = clock
    return ZentaoClient(ClientConfig(base_url=BASE_URL, app_code=code, app_key=key, **cfg), **kwargs)


def _ok(_: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "success"})


def test_build_url_without_credentials_is_plain_concatenation() -> None:
    client = _client(_ok, code="", key="")
    assert client.build_url("?m=test&f=index") == "http://zentao.test/api.php?m=test&f=index"
    assert not client.is_authenticated()


def test_build_url_signs_with_app_credentials() -> None:
    client = _client(_ok, clock=_FakeClock(1640995200))
    url = client.build_url("?m=test&f=index", {"param": "value"})

    params = httpx.URL(url).params
    assert params["m"] == "test"
    assert params["f"] == "index"
    assert params["code"] == "test_code"
    assert params["time"] == "1640995200"
    assert params["token"] == generate_token("test_code", "test_key", 1640995200)
    assert params["t"] == "json"
    assert params["param"] == "value"
    assert url.index("code=") < url.index("token=") < url.index("param=")


def test_build_url_auth_params_win_over_caller_params() -> None:
    client = _client(_ok)
    url = client.build_url("?m=test&f=index", {"token": "forged", "t": "html"})
    params = httpx.URL(url).params
    assert params["token"] != "forged"
    assert params.get_list("token") == [params["token"]]
    assert params["t"] == "html"


def test_build_url_keeps_existing_t_in_query() -> None:
    client = _client(_ok)
    url = client.build_url("?m=api&f=getModel&t=html")
    assert httpx.URL(url).params.get_list("t") == ["html"]


def test_get_translates_and_signs_request() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success", "data": {"id": 123}})

    client = _client(_handler)
    body = client.get("/products/123")

    assert json.loads(body)["data"]["id"] == 123
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "GET"
    assert request.url.params["m"] == "product"
    assert request.url.params["f"] == "view"
    assert request.url.params["id"] == "123"
    assert request.url.params["code"] == "test_code"
    assert request.headers["content-type"] == "application/json"


def test_post_sends_json_body() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success"})

    client = _client(_handler)
    client.post("/executions/4/tasks", {"name": "write docs"}, params={"type": "devel"})

    request = seen[0]
    assert request.method == "POST"
    assert request.url.params["m"] == "task"
    assert request.url.params["f"] == "create"
    assert request.url.params["execution"] == "4"
    assert request.url.params["type"] == "devel"
    assert json.loads(request.content) == {"name": "write docs"}


def test_expired_token_is_refreshed_and_retried_once() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) == 1:
            return httpx.Response(401, content=b'{"errcode":405,"errmsg":"Token has expired"}')
        if request.url.params.get("token"):
            return httpx.Response(200, json={"status": "success"})
        return httpx.Response(401, json={"error": "Unauthorized"})

    client = _client(_handler)
    body = client.get("/products/123")

    assert json.loads(body)["status"] == "success"
    assert len(seen) == 2
    first, second = seen
    assert int(second.url.params["time"]) > int(first.url.params["time"])
    assert second.url.params["token"] != first.url.params["token"]


def test_persistent_expiry_returns_second_response_after_two_calls() -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"errmsg": "invalid token", "attempt": len(calls)})

    client = _client(_handler)
    body = json.loads(client.get("/products"))

    assert len(calls) == 2
    assert body["attempt"] == 2


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"errcode": 500, "errmsg": "internal error"}),
        httpx.Response(502, text="<html>bad gateway</html>"),
        httpx.Response(200, json=[1, 2, 3]),
    ],
)
def test_other_failures_are_returned_without_retry(response) -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return response

    client = _client(_handler)
    body = client.get("/bugs")

    assert len(calls) == 1
    assert body == response.content


def test_untranslatable_path_never_hits_network() -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(_handler)
    with pytest.raises(TranslationError):
        client.get("/widgets/1")
    with pytest.raises(TranslationError):
        client.request("PATCH", "/products/1")
    assert calls == []


def test_unserializable_body_fails_before_network() -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(_handler)
    with pytest.raises(TypeError):
        client.post("/products", {"when": object()})
    assert calls == []


def test_transport_failure_raises_network_error() -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(_handler)
    with pytest.raises(NetworkError) as excinfo:
        client.get("/products")
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(calls) == 1


def test_timeout_raises_network_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(_handler)
    with pytest.raises(NetworkError):
        client.get("/products", timeout=0.5)


def test_per_call_timeout_reaches_transport() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = _client(_handler, timeout_s=15.0)
    client.get("/products")
    client.get("/products", timeout=2.0)

    assert seen[0].extensions["timeout"]["read"] == 15.0
    assert seen[1].extensions["timeout"]["read"] == 2.0


def test_closed_client_raises_network_error() -> None:
    client = _client(_ok)
    client.close()
    with pytest.raises(NetworkError):
        client.get("/products")


def test_config_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        ClientConfig(base_url="")
    with pytest.raises(ValueError):
        ClientConfig(base_url=BASE_URL, timeout_s=0)


def test_token_cache_through_client() -> None:
    clock = _FakeClock(1_000)
    client = _client(_ok, clock=clock)
    assert client.is_token_close_to_expiry()

    token, ts = client.get_cached_token()
    assert ts == 1_000
    assert token == generate_token("test_code", "test_key", 1_000)
    assert not client.is_token_close_to_expiry()

    clock.now = 1_014
    assert client.get_cached_token() == (token, ts)

    clock.now = 1_016
    assert client.get_cached_token() != (token, ts)

    client.force_token_refresh()
    assert client.peek_cached_token() == ("", 0)


def test_token_close_to_expiry_is_refreshed_before_sending() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success"})

    clock = _FakeClock(1_000)
    client = _client(_handler, clock=clock)
    client.get("/products")
    clock.now = 1_005
    client.get("/products")
    clock.now = 1_013
    client.get("/products")

    assert [r.url.params["time"] for r in seen] == ["1000", "1000", "1013"]


def test_changing_app_credentials_invalidates_cached_token() -> None:
    client = _client(_ok, clock=_FakeClock(1_000))
    client.get_cached_token()

    client.set_app_credentials("other", "key2")
    assert client.peek_cached_token() == ("", 0)
    token, ts = client.get_cached_token()
    assert token == generate_token("other", "key2", ts)


def test_concurrent_requests_share_token() -> None:
    tokens: list[str] = []
    lock = threading.Lock()

    def _handler(request: httpx.Request) -> httpx.Response:
        with lock:
            tokens.append(request.url.params["token"])
        return httpx.Response(200, json={"status": "success"})

    client = _client(_handler, clock=_FakeClock(1_000))
    errors: list[Exception] = []

    def _worker() -> None:
        try:
            client.get("/products")
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=_worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(tokens) == 20
    assert len(set(tokens)) == 1


def _session_handler(seen: list[httpx.Request], *, login_status: str = "success"):
    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        params = request.url.params
        if params.get("f") == "getSessionID":
            data = {"title": "", "sessionName": "zentaosid", "sessionID": "abc123", "rand": 42}
            return httpx.Response(200, json={"status": "success", "data": json.dumps(data)})
        if params.get("m") == "user" and params.get("f") == "login":
            if login_status == "success":
                return httpx.Response(200, json={"status": "success", "user": {"account": "admin"}})
            return httpx.Response(200, json={"status": "failed", "reason": "wrong password"})
        return httpx.Response(200, json={"status": "success"})

    return _handler


def test_acquire_session_then_login() -> None:
    seen: list[httpx.Request] = []
    client = _client(_session_handler(seen), code="", key="")

    session = client.acquire_session()
    assert session.name == "zentaosid"
    assert session.session_id == "abc123"
    assert client.auth_mode is AuthMode.SESSION
    assert client.is_authenticated()

    client.login("admin", "secret")
    login_request = seen[1]
    assert login_request.method == "POST"
    assert login_request.url.params["zentaosid"] == "abc123"
    assert json.loads(login_request.content) == {"account": "admin", "password": "secret"}

    client.get("/products")
    assert seen[2].url.params["zentaosid"] == "abc123"
    assert "token" not in seen[2].url.params


def test_login_failure_raises_auth_error() -> None:
    client = _client(_session_handler([], login_status="failed"), code="", key="")
    client.acquire_session()
    with pytest.raises(AuthError) as excinfo:
        client.login("admin", "bad")
    assert "wrong password" in str(excinfo.value)


def test_login_requires_session() -> None:
    client = _client(_ok, code="", key="")
    with pytest.raises(AuthError):
        client.login("admin", "secret")


def test_acquire_session_rejects_malformed_payload() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "success", "data": "not json"})

    client = _client(_handler, code="", key="")
    with pytest.raises(AuthError):
        client.acquire_session()


def test_issue_token_sets_token_header() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/tokens"):
            return httpx.Response(201, json={"token": "tok-1"})
        return httpx.Response(200, json={"status": "success"})

    client = _client(_handler, code="", key="")
    assert client.issue_token("admin", "secret") == "tok-1"
    assert client.auth_mode is AuthMode.SESSION

    client.get("/products")
    assert seen[1].headers["Token"] == "tok-1"
    assert str(seen[1].url) == f"{BASE_URL}?m=product&f=browse"


def test_issue_token_failure_raises_auth_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "Unauthorized"})

    client = _client(_handler, code="", key="")
    with pytest.raises(AuthError) as excinfo:
        client.issue_token("admin", "bad")
    assert excinfo.value.status_code == 401


def test_next_timestamp_is_strictly_increasing_per_client() -> None:
    client = _client(_ok, clock=_FakeClock(1_000))
    assert [client.next_timestamp() for _ in range(3)] == [1_000, 1_001, 1_002]
    token, ts = client.get_cached_token()
    assert ts == 1_003
    assert token == generate_token("test_code", "test_key", 1_003)


def test_context_manager_closes_transport() -> None:
    with _client(_ok) as client:
        assert json.loads(client.get("/products"))["status"] == "success"
    with pytest.raises(NetworkError):
        client.get("/products")


def test_credential_switch_mid_request_does_not_keep_old_signature(monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success"})

    client = _client(_handler, clock=_FakeClock(1_000))
    tokens_get = client._tokens.get
    switched: list[bool] = []

    def _get_after_switch(code, key, **kwargs):
        if not switched:
            switched.append(True)
            client.set_app_credentials("new", "newkey")
        return tokens_get(code, key, **kwargs)

    monkeypatch.setattr(client._tokens, "get", _get_after_switch)
    client.get("/products")
    client.get("/products")

    first, second = (r.url.params for r in seen)
    assert first["code"] == "test_code"
    assert first["token"] == generate_token("test_code", "test_key", int(first["time"]))
    assert second["code"] == "new"
    assert second["token"] == generate_token("new", "newkey", int(second["time"]))


def test_programming_errors_are_not_reported_as_network_errors() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("handler bug")

    client = _client(_handler)
    with pytest.raises(RuntimeError, match="handler bug"):
        client.get("/products")


def test_closed_client_makes_no_transport_call() -> None:
    calls = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(_handler)
    client.close()
    with pytest.raises(NetworkError, match="closed"):
        client.get("/products")
    assert calls == []
