from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from typing import Any, Mapping
from urllib.parse import parse_qs, urlencode

import httpx

from .clock import Clock, TimestampSource, default_clock
from .config_types import AuthMode, ClientConfig, SessionCredentials
from .envelope import decode_envelope, is_token_expired
from .errors import AuthError
from .routes import TranslatedCall, translate
from .tokens import TokenCache, token_preview
from .transport import Transport

SESSION_ID_QUERY = "?m=api&f=getSessionID&t=json"
LOGIN_QUERY = "?m=user&f=login"
TOKENS_PATH = "/tokens"
SESSION_TOKEN_HEADER = "Token"


def _encode_body(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body, ensure_ascii=False).encode("utf-8")


def _join_query(url: str, params: Mapping[str, str]) -> str:
    if not params:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode(params)}"


def _query_has(query: str, name: str) -> bool:
    return name in parse_qs(query.lstrip("?"), keep_blank_values=True)


class ZentaoClient:
    """Authenticated ZenTao API client.

    Generic REST-style calls (``get("/products/1")``) are translated into
    ZenTao's ``?m=&f=`` convention, signed with app credentials or a session,
    and retried exactly once when the upstream reports an expired token.
    Safe to share between threads.
    """

    def __init__(
        self,
        cfg: ClientConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Clock = default_clock,
        logger: logging.Logger | None = None,
    ):
        self._log = logger or logging.getLogger("zentao_client")
        self._cfg = cfg
        self._cfg_lock = threading.Lock()
        self._timestamps = TimestampSource(clock, logger=self._log.getChild("clock"))
        self._tokens = TokenCache(self._timestamps, logger=self._log.getChild("tokens"))
        self._t = Transport(cfg, transport=transport, logger=self._log.getChild("transport"))
        self._log.info(
            "client created base_url=%s auth=%s has_code=%s has_key=%s",
            cfg.base_url,
            cfg.auth_mode.value,
            bool(cfg.app_code),
            bool(cfg.app_key),
        )

    def close(self) -> None:
        self._t.close()

    def __enter__(self) -> "ZentaoClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- configuration ---
    @property
    def auth_mode(self) -> AuthMode:
        return self._cfg.auth_mode

    def set_app_credentials(self, code: str, key: str) -> None:
        with self._cfg_lock:
            self._cfg = replace(self._cfg, auth_mode=AuthMode.APP, app_code=code, app_key=key)
        self._tokens.invalidate()
        self._log.info("app credentials set has_code=%s has_key=%s", bool(code), bool(key))

    def set_session_credentials(self, name: str, session_id: str, token: str = "") -> None:
        session = SessionCredentials(name=name, session_id=session_id, token=token)
        with self._cfg_lock:
            self._cfg = replace(self._cfg, auth_mode=AuthMode.SESSION, session=session)
        self._log.info(
            "session credentials set name=%s has_session=%s has_token=%s",
            name or "-",
            session.has_session,
            bool(token),
        )

    def is_authenticated(self) -> bool:
        cfg = self._cfg
        if cfg.auth_mode is AuthMode.APP:
            return cfg.has_app_credentials
        return cfg.session.is_set

    # --- token cache ---
    def get_cached_token(self) -> tuple[str, int]:
        cfg = self._cfg
        cached = self._tokens.get(cfg.app_code, cfg.app_key)
        return cached.token, cached.timestamp

    def peek_cached_token(self) -> tuple[str, int]:
        """Current cache contents, without regenerating anything."""
        cached = self._tokens.snapshot()
        return cached.token, cached.timestamp

    def is_token_close_to_expiry(self) -> bool:
        return self._tokens.close_to_expiry()

    def force_token_refresh(self) -> None:
        self._tokens.invalidate()

    def next_timestamp(self) -> int:
        return self._timestamps.next()

    # --- url building ---
    def translate(self, method: str, path: str) -> TranslatedCall:
        call = translate(method, path)
        self._log.debug(
            "translated %s %s -> %s params=%s", method.upper(), path, call.query, sorted(call.params)
        )
        return call

    def build_url(self, query: str, params: Mapping[str, Any] | None = None) -> str:
        return self._build_url(self._cfg, query, params)

    def _auth_params(self, cfg: ClientConfig, refresh_early: bool = False) -> dict[str, str]:
        if cfg.auth_mode is AuthMode.APP:
            if not cfg.has_app_credentials:
                return {}
            cached = self._tokens.get(cfg.app_code, cfg.app_key, refresh_early=refresh_early)
            self._log.debug(
                "signing with code=%s time=%s token=%s",
                cfg.app_code,
                cached.timestamp,
                token_preview(cached.token),
            )
            return {"code": cfg.app_code, "time": str(cached.timestamp), "token": cached.token}
        if cfg.session.has_session:
            return {cfg.session.name: cfg.session.session_id}
        return {}

    def _build_url(
        self,
        cfg: ClientConfig,
        query: str,
        params: Mapping[str, Any] | None,
        *,
        refresh_early: bool = False,
    ) -> str:
        extra = {str(k): str(v) for k, v in (params or {}).items()}
        auth = self._auth_params(cfg, refresh_early)
        if not auth:
            return _join_query(cfg.base_url + query, extra)

        merged = dict(auth)
        if "t" not in extra and not _query_has(query, "t"):
            merged["t"] = "json"
        for k, v in extra.items():
            merged.setdefault(k, v)
        return _join_query(cfg.base_url + query, merged)

    def _headers(self, cfg: ClientConfig, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if cfg.auth_mode is AuthMode.SESSION and cfg.session.token:
            headers[SESSION_TOKEN_HEADER] = cfg.session.token
        if extra:
            headers.update(extra)
        return headers

    # --- requests ---
    def _send(
        self,
        method: str,
        call: TranslatedCall,
        content: bytes | None,
        *,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str] | None,
        timeout: float | None,
        refresh_early: bool = False,
    ) -> httpx.Response:
        cfg = self._cfg
        merged: dict[str, Any] = dict(call.params)
        for k, v in (params or {}).items():
            merged.setdefault(k, v)
        url = self._build_url(cfg, call.query, merged, refresh_early=refresh_early)
        return self._t.send(method, url, content=content, headers=self._headers(cfg, headers), timeout=timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """Execute a REST-style call and return the raw response body.

        Raises TranslationError before any network traffic when the path has
        no mapping, and NetworkError on transport failures. HTTP error statuses
        are not raised; their bodies are returned as-is.
        """
        verb = method.upper()
        call = self.translate(verb, path)
        content = _encode_body(body)

        # tokens within the last fifth of their cache window are replaced before sending
        r = self._send(verb, call, content, params=params, headers=headers, timeout=timeout, refresh_early=True)
        if not is_token_expired(decode_envelope(r.content)):
            return r.content

        self._log.warning(
            "token expired on %s %s (status %s), refreshing and retrying once", verb, path, r.status_code
        )
        self.force_token_refresh()
        r = self._send(verb, call, content, params=params, headers=headers, timeout=timeout)
        if is_token_expired(decode_envelope(r.content)):
            self._log.error("token still rejected after refresh on %s %s", verb, path)
        return r.content

    def get(self, path: str, **kwargs: Any) -> bytes:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, body: Any = None, **kwargs: Any) -> bytes:
        return self.request("POST", path, body, **kwargs)

    def put(self, path: str, body: Any = None, **kwargs: Any) -> bytes:
        return self.request("PUT", path, body, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> bytes:
        return self.request("DELETE", path, **kwargs)

    # --- session authentication ---
    def _json_or_auth_error(self, r: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = r.json()
        except ValueError:
            raise AuthError(r.status_code, f"{what} returned a non-JSON response", r.text[:1000]) from None
        if r.status_code >= 400:
            raise AuthError(r.status_code, f"{what} failed with {r.status_code}", json.dumps(data, ensure_ascii=False))
        if not isinstance(data, dict):
            raise AuthError(r.status_code, f"{what} returned an unexpected payload", r.text[:1000])
        return data

    def acquire_session(self, *, timeout: float | None = None) -> SessionCredentials:
        cfg = self._cfg
        r = self._t.send(
            "GET", cfg.base_url + SESSION_ID_QUERY, headers=self._headers(cfg, None), timeout=timeout
        )
        data = self._json_or_auth_error(r, "session request")
        payload = data.get("data")
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError:
                payload = None
        if not isinstance(payload, dict):
            raise AuthError(r.status_code, "invalid session response format", r.text[:1000])
        name = payload.get("sessionName")
        session_id = payload.get("sessionID")
        if not isinstance(name, str) or not name:
            raise AuthError(r.status_code, "sessionName not found in response", r.text[:1000])
        if not isinstance(session_id, str) or not session_id:
            raise AuthError(r.status_code, "sessionID not found in response", r.text[:1000])

        self.set_session_credentials(name, session_id, cfg.session.token)
        return self._cfg.session

    def login(self, account: str, password: str, *, timeout: float | None = None) -> None:
        cfg = self._cfg
        if cfg.auth_mode is not AuthMode.SESSION or not cfg.session.has_session:
            raise AuthError(0, "session not initialized, call acquire_session() first")

        self._log.info("session login account=%s", account)
        url = self._build_url(cfg, LOGIN_QUERY, None)
        body = _encode_body({"account": account, "password": password})
        r = self._t.send("POST", url, content=body, headers=self._headers(cfg, None), timeout=timeout)
        data = self._json_or_auth_error(r, "login")
        status = data.get("status")
        if status != "success":
            reason = data.get("reason") or data.get("message") or status or "unknown"
            raise AuthError(r.status_code, f"login failed: {reason}", json.dumps(data, ensure_ascii=False))
        self._log.info("session login succeeded account=%s", account)

    def issue_token(self, account: str, password: str, *, timeout: float | None = None) -> str:
        cfg = self._cfg
        body = _encode_body({"account": account, "password": password})
        r = self._t.send(
            "POST",
            cfg.base_url + TOKENS_PATH,
            content=body,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        data = self._json_or_auth_error(r, "token request")
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise AuthError(r.status_code, "token request returned no token", json.dumps(data, ensure_ascii=False))

        self.set_session_credentials(cfg.session.name, cfg.session.session_id, token)
        self._log.info("issued session token %s for account=%s", token_preview(token), account)
        return token


