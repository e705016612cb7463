"""Heuristic quality signals for a generated title."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Sequence, Set

from services.feed_parser import SEPARATOR, format_template

# Quoted-phrase interiors (up to the closing quote) or bare word tokens.
WORD_MATCH_RE = re.compile(r'(?:\w|\s)*\w(?=")|\w+')

SCORE_COMPONENTS = 5


def match_words(text: object) -> List[str]:
    if text is None:
        return []
    return WORD_MATCH_RE.findall(str(text))


def collect_input_words(data: Mapping[str, Any]) -> Set[str]:
    """Lowercase words found in every value of the row."""

    words: Set[str] = set()
    for value in data.values():
        words.update(word.lower() for word in match_words(value))
    return words


@dataclass
class GenerationMetrics:
    total_score: float
    title_changed: bool
    attributes_added: List[str] = field(default_factory=list)
    words_added: List[str] = field(default_factory=list)
    gap_attributes_present: List[str] = field(default_factory=list)
    gap_attributes_invented: List[str] = field(default_factory=list)

    @property
    def attributes_added_display(self) -> str:
        return format_template(self.attributes_added)

    @property
    def words_added_display(self) -> str:
        return f" {SEPARATOR} ".join(self.words_added)


def _ordered_difference(items: Iterable[str], excluded: Iterable[str]) -> List[str]:
    excluded_set = set(excluded)
    return [item for item in dict.fromkeys(items) if item not in excluded_set]


def score_generation(
    original_title: object,
    generated_title: str,
    original_attributes: Sequence[str],
    generated_attributes: Sequence[str],
    input_words: Set[str],
    gap_attributes: Mapping[str, str],
    data: Mapping[str, Any],
) -> GenerationMetrics:
    title_changed = original_title != generated_title
    added = _ordered_difference(generated_attributes, original_attributes)
    new_words = [
        word
        for word in dict.fromkeys(match_words(generated_title))
        if word.lower() not in input_words
    ]
    present = [key for key in gap_attributes if key in data]
    invented = [key for key in gap_attributes if key not in data]

    indicators = (
        bool(added),
        title_changed,
        not new_words,
        bool(present),
        bool(invented),
    )
    total_score = sum(indicators) / SCORE_COMPONENTS

    return GenerationMetrics(
        total_score=total_score,
        title_changed=title_changed,
        attributes_added=added,
        words_added=new_words,
        gap_attributes_present=present,
        gap_attributes_invented=invented,
    )
