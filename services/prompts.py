"""Prompt construction for the title and description generation phases."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Sequence

GENERATED_TITLE_KEY = "Generated Title"


def row_context(headers: Sequence[Any], values: Sequence[Any]) -> Dict[str, Any]:
    """Map non-blank header names to the row's cell values."""

    context: Dict[str, Any] = {}
    for index, header in enumerate(headers):
        if header in (None, ""):
            continue
        context[str(header)] = values[index] if index < len(values) else ""
    return context


def context_json(data: Mapping[str, Any]) -> str:
    return json.dumps(dict(data), ensure_ascii=False, separators=(",", ":"), default=str)


def _with_context(template: str, data: Mapping[str, Any]) -> str:
    # The trailing blank line leaves the model room to complete the answer.
    return f"{template}Context: {context_json(data)}\n\n"


def build_title_prompt(template: str, data: Mapping[str, Any]) -> str:
    return _with_context(template, data)


def build_description_prompt(template: str, data: Mapping[str, Any], generated_title: str) -> str:
    """Description prompt with the generated title injected into the context."""

    enriched = dict(data)
    enriched[GENERATED_TITLE_KEY] = generated_title
    return _with_context(template, enriched)
