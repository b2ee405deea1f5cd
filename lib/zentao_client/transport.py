from __future__ import annotations

import logging
import time
from typing import Mapping

import httpx

from .config_types import ClientConfig
from .errors import NetworkError


class Transport:
    def __init__(
        self,
        cfg: ClientConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self._log = logger or logging.getLogger("zentao_client.transport")
        self._client = httpx.Client(
            timeout=cfg.timeout_s,
            headers={"User-Agent": cfg.user_agent},
            follow_redirects=True,
            transport=transport,
        )
        self._closed = False

    def close(self) -> None:
        self._closed = True
        self._client.close()

    def send(
        self,
        method: str,
        url: str,
        *,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        if self._closed:
            raise NetworkError("client is closed")
        started = time.monotonic()
        try:
            r = self._client.request(
                method,
                url,
                content=content,
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.RequestError as e:
            self._log.error("%s request failed: %s", method, e)
            raise NetworkError(str(e) or type(e).__name__) from e
        except RuntimeError as e:
            # closed by another thread between the check above and the send
            if not self._closed:
                raise
            raise NetworkError(str(e)) from e

        self._log.debug(
            "%s -> %s (%d bytes, %.0f ms)",
            method,
            r.status_code,
            len(r.content),
            (time.monotonic() - started) * 1000,
        )
        return r
