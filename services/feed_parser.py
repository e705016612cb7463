"""Parser for the four-line structured answer of the title generation phase.

The model is asked to answer with::

    product attribute keys in original title: color|brand
    product category: Apparel > Shoes
    product attribute keys: brand|color|size
    product attribute values: Acme|Red|10

Each line after its prefix is a ``|``-separated list; the category line is a
single value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from utils.llm_text import short_preview_of, strip_code_fences

ORIGINAL_TITLE_TEMPLATE_PREFIX = "product attribute keys in original title:"
CATEGORY_PREFIX = "product category:"
TEMPLATE_PREFIX = "product attribute keys:"
ATTRIBUTES_PREFIX = "product attribute values:"
SEPARATOR = "|"

SEGMENTS: Tuple[Tuple[str, str], ...] = (
    ("original title attribute keys", ORIGINAL_TITLE_TEMPLATE_PREFIX),
    ("category", CATEGORY_PREFIX),
    ("generated attribute keys", TEMPLATE_PREFIX),
    ("generated attribute values", ATTRIBUTES_PREFIX),
)


class ResponseParseError(ValueError):
    """Raised when a title response does not follow the four-line format."""


class MissingSegmentError(ResponseParseError):
    def __init__(self, segment: str, position: int, response: str):
        super().__init__(
            f"Model response is missing line {position} ({segment}): "
            f"{short_preview_of(response, max_len=200)!r}"
        )
        self.segment = segment
        self.position = position


@dataclass(frozen=True)
class TitleResponse:
    original_attributes: List[str]
    category: str
    generated_attributes: List[str]
    generated_values: List[str]

    @property
    def original_template(self) -> str:
        return format_template(self.original_attributes)

    @property
    def generated_template(self) -> str:
        return format_template(self.generated_attributes)


def format_template(keys: List[str]) -> str:
    """Render attribute keys as ``<key1> <key2> ...``."""

    return " ".join(f"<{key.strip()}>" for key in keys)


def split_segment(line: str, prefix: str) -> List[str]:
    """Strip ``prefix`` and return the trimmed, non-empty ``|`` pieces."""

    body = line.replace(prefix, "", 1)
    return [piece.strip() for piece in body.split(SEPARATOR) if piece.strip()]


def parse_title_response(response: str) -> TitleResponse:
    text = strip_code_fences(response)
    lines = text.split("\n")
    if len(lines) < len(SEGMENTS):
        segment, _prefix = SEGMENTS[len(lines)]
        raise MissingSegmentError(segment, len(lines) + 1, text)

    original_line, category_line, template_line, values_line = lines[:4]
    return TitleResponse(
        original_attributes=split_segment(original_line, ORIGINAL_TITLE_TEMPLATE_PREFIX),
        category=category_line.replace(CATEGORY_PREFIX, "", 1).strip(),
        generated_attributes=split_segment(template_line, TEMPLATE_PREFIX),
        generated_values=split_segment(values_line, ATTRIBUTES_PREFIX),
    )
