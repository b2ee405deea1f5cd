"""Typed inspection of response bodies for authentication expiry.

A body either decodes into an :class:`ErrorEnvelope` (``Decoded``) or it does
not (``Unparseable``). Only decoded envelopes can signal an expired token.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

EXPIRED_ERRCODE = 405
MESSAGE_FIELDS = ("errmsg", "message", "error")

_EXPIRED_TEXT = re.compile(
    r"token[^.]*expired|expired[^.]*token|invalid[\s_-]*token|token[\s_-]*(?:is[\s_-]*)?invalid",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ErrorEnvelope:
    errcode: int | None = None
    messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class Decoded:
    envelope: ErrorEnvelope


@dataclass(frozen=True)
class Unparseable:
    reason: str


EnvelopeResult = Union[Decoded, Unparseable]


def _as_code(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def decode_envelope(body: bytes | str) -> EnvelopeResult:
    try:
        data = json.loads(body)
    except (ValueError, TypeError) as e:
        return Unparseable(str(e))
    if not isinstance(data, dict):
        return Unparseable(f"expected a JSON object, got {type(data).__name__}")
    messages = tuple(data[k] for k in MESSAGE_FIELDS if isinstance(data.get(k), str))
    return Decoded(ErrorEnvelope(errcode=_as_code(data.get("errcode")), messages=messages))


def is_token_expired(result: EnvelopeResult) -> bool:
    if not isinstance(result, Decoded):
        return False
    envelope = result.envelope
    if envelope.errcode == EXPIRED_ERRCODE:
        return True
    return any(_EXPIRED_TEXT.search(msg) for msg in envelope.messages)
