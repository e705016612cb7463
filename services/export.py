"""Flatten approved generated records into the supplemental feed layout."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from services.sheet_layout import GENERATED, OUTPUT

INVENTED_PREFIX = "new_"


@dataclass
class ExportTable:
    header: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    gap_attributes: List[str] = field(default_factory=list)
    invented_attributes: List[str] = field(default_factory=list)


def load_json_cell(value: Any) -> Dict[str, Any]:
    """Decode a JSON object stored in a cell; blank cells decode to ``{}``."""

    if isinstance(value, Mapping):
        return dict(value)
    if value in (None, ""):
        return {}
    parsed = json.loads(str(value))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def is_approved(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() == "TRUE"
    return value is True


def approved_rows(rows: Iterable[Sequence[Any]]) -> List[Sequence[Any]]:
    """Approved rows that carry an item id; failed rows without one are skipped."""

    approval = GENERATED.cols.approval
    item_id = GENERATED.cols.id
    return [
        row
        for row in rows
        if len(row) > max(approval, item_id) and is_approved(row[approval]) and str(row[item_id]).strip()
    ]


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else ""


def split_gap_and_invented(rows: Iterable[Sequence[Any]]) -> Tuple[List[str], List[str]]:
    """Return ``(gap, invented)`` attribute keys across ``rows`` in first-seen order.

    A filled-in key is *invented* when no row's original input declares it,
    otherwise it is a *gap*.
    """

    cols = GENERATED.cols
    filled_in: Dict[str, None] = {}
    all_inputs: Dict[str, None] = {}
    for row in rows:
        filled_in.update(dict.fromkeys(load_json_cell(_cell(row, cols.gap_attributes))))
        all_inputs.update(dict.fromkeys(load_json_cell(_cell(row, cols.original_input))))

    invented = [key for key in filled_in if key not in all_inputs]
    gap = [key for key in filled_in if key in all_inputs]
    return gap, invented


def export_timestamp(now: Optional[datetime] = None) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_export_table(
    rows: Sequence[Sequence[Any]], *, now: Optional[datetime] = None
) -> ExportTable:
    """Build the output header and rows for already-approved ``rows``."""

    if not rows:
        return ExportTable()

    cols = GENERATED.cols
    out = OUTPUT.cols
    gap, invented = split_gap_and_invented(rows)
    attribute_columns = [*gap, *invented]
    header = [
        out.id.name,
        out.title.name,
        out.description.name,
        *gap,
        *(f"{INVENTED_PREFIX}{key}" for key in invented),
    ]

    timestamp = export_timestamp(now)
    table_rows: List[List[Any]] = []
    for row in rows:
        result: List[Any] = [""] * (out.gap_start + len(attribute_columns))
        result[out.modification_timestamp] = timestamp
        result[out.id.idx] = _cell(row, cols.id)
        result[out.title.idx] = _cell(row, cols.title_generated)
        result[out.description.idx] = _cell(row, cols.description_generated)

        row_gaps = load_json_cell(_cell(row, cols.gap_attributes))
        original_input = load_json_cell(_cell(row, cols.original_input))
        for index, attribute in enumerate(attribute_columns):
            if attribute in row_gaps:
                value = row_gaps[attribute]
            else:
                value = original_input.get(attribute, "")
            result[out.gap_start + index] = "" if value is None else value
        table_rows.append(result)

    return ExportTable(
        header=header,
        rows=table_rows,
        gap_attributes=gap,
        invented_attributes=invented,
    )
