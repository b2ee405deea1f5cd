from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

ENV_LOG_LEVEL = "ZENTAO_LOG_LEVEL"
ENV_LOG_JSON = "ZENTAO_LOG_JSON"

_LEVELS = {"DEBUG", "INFO", "WARNING", "WARN", "ERROR"}


@dataclass(frozen=True)
class LogConfig:
    level: str = "WARNING"
    json: bool = False

    @property
    def verbose(self) -> bool:
        return self.level == "DEBUG"

    @classmethod
    def from_env(cls, *, verbose: bool = False, json_logs: bool = False) -> "LogConfig":
        level = os.getenv(ENV_LOG_LEVEL, "").strip().upper()
        if level == "WARN":
            level = "WARNING"
        if verbose:
            level = "DEBUG"
        elif level not in _LEVELS:
            level = "WARNING"
        use_json = json_logs or os.getenv(ENV_LOG_JSON, "").strip().lower() == "true"
        return cls(level=level, json=use_json)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(cfg: LogConfig) -> logging.Logger:
    level = getattr(logging, cfg.level, logging.WARNING)
    handler = logging.StreamHandler()
    if cfg.json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    # httpx logs full request URLs, which carry the signing token
    logging.getLogger("httpx").setLevel(logging.DEBUG if cfg.verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.DEBUG if cfg.verbose else logging.WARNING)
    return logging.getLogger("zentao_client")
