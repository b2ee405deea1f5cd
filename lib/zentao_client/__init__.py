from .client import ZentaoClient
from .config_types import AuthMode, ClientConfig, SessionCredentials
from .errors import ApiError, AuthError, NetworkError, TranslationError, ZentaoClientError
from .routes import TranslatedCall, translate

__all__ = [
    "ZentaoClient",
    "AuthMode",
    "ClientConfig",
    "SessionCredentials",
    "TranslatedCall",
    "translate",
    "ApiError",
    "AuthError",
    "NetworkError",
    "TranslationError",
    "ZentaoClientError",
]
