from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AuthMode(str, Enum):
    APP = "app"
    SESSION = "session"


@dataclass(frozen=True)
class SessionCredentials:
    name: str = ""
    session_id: str = ""
    token: str = ""

    @property
    def has_session(self) -> bool:
        return bool(self.name and self.session_id)

    @property
    def is_set(self) -> bool:
        return self.has_session or bool(self.token)


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    auth_mode: AuthMode = AuthMode.APP
    app_code: str = ""
    app_key: str = ""
    session: SessionCredentials = field(default_factory=SessionCredentials)
    timeout_s: float = 15.0
    user_agent: str = "zentao-client/0.1.0"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url is required")
        if not self.timeout_s or self.timeout_s <= 0:
            raise ValueError("timeout_s must be a positive number of seconds")

    @property
    def has_app_credentials(self) -> bool:
        return bool(self.app_code and self.app_key)
