"""Parsing helpers for carrier input and identifiers"""

from decimal import Decimal, InvalidOperation
from typing import Optional


def latest_token(text: str) -> str:
    """
    Return the most recent input from the carrier's accumulated text.

    Gateways send every keystroke group so far joined by '*'
    (e.g. "1*71234567*50"); a plain "50" is its own latest token.
    """
    return text.rsplit("*", 1)[-1].strip()


def is_replayed_input(text: str, last_text: str) -> bool:
    """
    True when text repeats the last handled turn or an earlier one.

    Accumulated carrier input only grows, so a text whose '*'-tokens are a
    leading slice of the last handled text ("1*72000002" after
    "1*72000002*abc", or the same text again) is a retransmit, not input.
    """
    if not last_text:
        return False
    sent = text.split("*")
    handled = last_text.split("*")
    return len(sent) <= len(handled) and handled[: len(sent)] == sent


def parse_amount(raw: str) -> Optional[Decimal]:
    """Parse a user-typed amount; None when not a finite number"""
    try:
        amount = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        return None
    if not amount.is_finite():
        return None
    return amount


def is_canonical_identity(value: str, prefix: str) -> bool:
    return value.startswith(prefix)


def alias_type_for(value: str) -> str:
    """Infer alias registry type from its shape"""
    return "email" if "@" in value else "phone"


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut text to at most max_bytes of UTF-8 without splitting a character"""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")
