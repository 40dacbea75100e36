from __future__ import annotations

import html
import re

_TAG_RE = re.compile(r"<[^>]*>")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NON_DIGIT_RE = re.compile(r"\D")

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15


def escape_text(value: str | None, max_length: int | None = None) -> str:
    text = html.escape(str(value or ""), quote=True).strip()
    if max_length is not None:
        text = text[:max_length]
    return text


def strip_tags(value: str | None, max_length: int | None = None) -> str:
    text = str(value or "")
    if max_length is not None:
        text = text[:max_length]
    return _TAG_RE.sub("", text).strip()


def is_valid_email(value) -> bool:
    return isinstance(value, str) and bool(_EMAIL_RE.fullmatch(value))


def normalize_phone(value: str | None) -> str | None:
    digits = _NON_DIGIT_RE.sub("", str(value or ""))
    if len(digits) < PHONE_MIN_DIGITS or len(digits) > PHONE_MAX_DIGITS:
        return None
    return digits
