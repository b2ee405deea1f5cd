from __future__ import annotations

import logging

from zentao_client import ZentaoClient
from zentao_client.config_types import ClientConfig, SessionCredentials

from .config import AppConfig, apply_env, apply_profile, normalize_base_url


def make_client(
    cfg: AppConfig,
    *,
    profile: str | None = None,
    base_url_override: str | None = None,
    logger: logging.Logger | None = None,
) -> ZentaoClient:
    effective_cfg = apply_env(apply_profile(cfg, profile))
    base_url = normalize_base_url(base_url_override or effective_cfg.base_url, warn=True)
    return ZentaoClient(
        ClientConfig(
            base_url=base_url,
            auth_mode=effective_cfg.auth_mode,
            app_code=effective_cfg.app.code,
            app_key=effective_cfg.app.key,
            session=SessionCredentials(
                name=effective_cfg.session.name,
                session_id=effective_cfg.session.session_id,
                token=effective_cfg.session.token,
            ),
            timeout_s=effective_cfg.timeout_s,
        ),
        logger=logger,
    )
