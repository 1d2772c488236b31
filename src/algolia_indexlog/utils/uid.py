"""Identifier helpers for sessions and items."""

from __future__ import annotations

import secrets
import time

from algolia_indexlog.constants import BATCH_ITEM_ID

__all__ = ["item_key", "make_session_id", "normalize_item_id"]


def make_session_id(prefix: str = "idx_") -> str:
    """
    Generate a high-entropy session identifier.

    The id starts with the hex wall-clock time in microseconds so ids sort
    roughly by start time, followed by 64 random bits so concurrent runs on
    different hosts never collide.

    Parameters
    ----------
    prefix : str, optional
        Identifier prefix, by default "idx_"

    Returns
    -------
    str
        Session identifier, e.g. "idx_5f8e2a1b3c4d5.9a8b7c6d5e4f3a2b"

    Examples
    --------
    >>> make_session_id().startswith("idx_")
    True
    """
    return f"{prefix}{time.time_ns() // 1000:x}.{secrets.token_hex(8)}"


def normalize_item_id(value: int | str | None) -> int | str:
    """
    Normalize an item identifier.

    Integers pass through, digit strings in canonical form become integers,
    ``None`` and empty strings become the batch-level id ``0``. Anything
    else, including digit strings with leading zeros such as ``"007"``, is
    kept as an external string key.

    Parameters
    ----------
    value : int | str | None
        Raw item identifier

    Returns
    -------
    int | str
        Normalized identifier

    Examples
    --------
    >>> normalize_item_id("42")
    42
    >>> normalize_item_id(None)
    0
    >>> normalize_item_id("sku-9")
    'sku-9'
    >>> normalize_item_id("007")
    '007'
    """
    if value is None:
        return BATCH_ITEM_ID
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return BATCH_ITEM_ID
    # Only canonical digit strings; "007" must stay distinct from 7
    if text.isascii() and text.isdigit() and str(int(text)) == text:
        return int(text)
    return text


def item_key(value: int | str | None) -> str:
    """Return the string form of an item id as stored in the database."""
    return str(normalize_item_id(value))
