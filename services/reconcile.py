"""Merge generated title attributes with the values already present in a row."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence


@dataclass
class ReconciledTitle:
    title: str
    features: List[str] = field(default_factory=list)
    gap_attributes: Dict[str, str] = field(default_factory=dict)


def is_gap_attribute(key: str, data: Mapping[str, Any], original_attributes: Sequence[str]) -> bool:
    """Whether ``key`` should be filled from the generated values.

    A key is a gap when the row has no value for it and either the original
    title did not use it, or the row declares the column but left it empty.
    Declared-but-empty columns are always fillable, even when the original
    title template already referenced them.
    """

    if data.get(key):
        return False
    return key not in original_attributes or key in data


def reconcile_title(
    data: Mapping[str, Any],
    original_attributes: Sequence[str],
    generated_attributes: Sequence[str],
    generated_values: Sequence[str],
) -> ReconciledTitle:
    """Build the generated title, preferring row values over generated ones."""

    features: List[str] = []
    gaps: Dict[str, str] = {}
    for index, key in enumerate(generated_attributes):
        generated = generated_values[index] if index < len(generated_values) else ""
        if is_gap_attribute(key, data, original_attributes):
            gaps[key] = generated
        existing = data.get(key)
        features.append(str(existing) if existing else generated)

    return ReconciledTitle(title=" ".join(features), features=features, gap_attributes=gaps)
