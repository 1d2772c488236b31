"""Lenient accessors for stage-specific payload fields.

Payloads come from pipeline hooks and carry whatever the host put there.
Strict accessors raise MalformedPayload; the lenient wrappers turn that into
the default so a bad field never stops analysis.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from algolia_indexlog.errors import MalformedPayload

__all__ = ["payload_flag", "payload_int", "payload_str", "require_flag", "require_int"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def require_flag(payload: dict[str, Any], key: str) -> bool:
    """
    Read a boolean field.

    Raises
    ------
    MalformedPayload
        If the field is missing or not interpretable as a boolean
    """
    if key not in payload or payload[key] is None:
        raise MalformedPayload(key, f"Missing payload field: {key}")
    value = payload[key]
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise MalformedPayload(key, f"Payload field {key}={value!r} is not a boolean")


def require_int(payload: dict[str, Any], key: str) -> int:
    """
    Read an integer field.

    Raises
    ------
    MalformedPayload
        If the field is missing or not an integer
    """
    if key not in payload or payload[key] is None:
        raise MalformedPayload(key, f"Missing payload field: {key}")
    value = payload[key]
    if isinstance(value, bool):
        raise MalformedPayload(key, f"Payload field {key}={value!r} is not an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(key, f"Payload field {key}={value!r} is not an integer") from e


def payload_flag(
    payload: dict[str, Any], key: str, default: bool | None = None
) -> bool | None:
    """Boolean field, or ``default`` when missing or malformed."""
    try:
        return require_flag(payload, key)
    except MalformedPayload as e:
        if key in payload:
            logger.debug(str(e))
        return default


def payload_int(payload: dict[str, Any], key: str, default: int = 0) -> int:
    """Integer field, or ``default`` when missing or malformed."""
    try:
        return require_int(payload, key)
    except MalformedPayload as e:
        if key in payload:
            logger.debug(str(e))
        return default


def payload_str(payload: dict[str, Any], *keys: str, default: str = "") -> str:
    """First non-empty field among ``keys`` as a string."""
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return default
