"""Helpers for cleaning plain-text responses from LLMs."""

from __future__ import annotations

import re


_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*$", flags=re.MULTILINE)


def strip_code_fences(text: object) -> str:
    """Drop markdown fence lines and surrounding blank lines from ``text``."""

    if not isinstance(text, str):
        return ""
    cleaned = _FENCE_RE.sub("", text.replace("\r\n", "\n"))
    return cleaned.strip("\n")


def short_preview_of(value: object, *, max_len: int = 120) -> str:
    """Return a short preview string suitable for error messages."""

    if isinstance(value, str):
        text = re.sub(r"\s+", " ", value.strip())
    else:
        text = str(value or "").strip()

    if not text:
        return ""

    return text[:max_len]
