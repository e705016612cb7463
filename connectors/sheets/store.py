"""In-memory workbook with spreadsheet-style 1-based range access."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd


_LOGGER = logging.getLogger(__name__)

Cell = Any
Rows = List[List[Cell]]


class SheetNotFoundError(KeyError):
    """Raised when a sheet name is not present in the workbook."""

    def __init__(self, sheet_name: str):
        super().__init__(f"Sheet {sheet_name} not found")
        self.sheet_name = sheet_name

    def __str__(self) -> str:
        return self.args[0]


class InvalidRangeError(ValueError):
    """Raised for ranges starting before row/column 1."""


@dataclass(frozen=True)
class _SheetFilter:
    column: int
    predicate: Callable[[Cell], bool]
    start_row: int


def _is_empty(value: Cell) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and value == ""


def _clean_cell(value: Cell) -> Cell:
    return "" if _is_empty(value) else value


def _padded(source: Sequence[Cell], start: int, stop: int) -> List[Cell]:
    row = list(source[start:stop])
    row.extend([""] * (stop - start - len(row)))
    return row


class SheetStore:
    """Named sheets held as lists of rows.

    Rows and columns are addressed 1-based, the way the spreadsheet API does.
    Blank cells read back as ``""``.
    """

    def __init__(self, sheets: Optional[Mapping[str, Iterable[Sequence[Cell]]]] = None):
        self._sheets: Dict[str, Rows] = {}
        self._filters: Dict[str, Dict[int, _SheetFilter]] = {}
        for name, rows in (sheets or {}).items():
            self.add_sheet(name, rows)

    # -- sheet management -------------------------------------------------

    def add_sheet(self, name: str, rows: Optional[Iterable[Sequence[Cell]]] = None) -> None:
        self._sheets[name] = [[_clean_cell(cell) for cell in row] for row in (rows or [])]
        self._filters.pop(name, None)

    def ensure_sheet(self, name: str) -> None:
        if name not in self._sheets:
            self.add_sheet(name)

    def has_sheet(self, name: str) -> bool:
        return name in self._sheets

    @property
    def sheet_names(self) -> List[str]:
        return list(self._sheets)

    def _sheet(self, name: str) -> Rows:
        try:
            return self._sheets[name]
        except KeyError:
            raise SheetNotFoundError(name) from None

    @staticmethod
    def _check_origin(row: int, col: int) -> None:
        if row < 1 or col < 1:
            raise InvalidRangeError(f"Invalid range origin ({row}, {col})")

    # -- dimensions -------------------------------------------------------

    def get_last_row(self, name: str) -> int:
        rows = self._sheet(name)
        for index in range(len(rows), 0, -1):
            if any(not _is_empty(cell) for cell in rows[index - 1]):
                return index
        return 0

    def get_last_column(self, name: str) -> int:
        last = 0
        for row in self._sheet(name):
            for index in range(len(row), last, -1):
                if not _is_empty(row[index - 1]):
                    last = index
                    break
        return last

    def get_total_rows(self, name: str) -> int:
        return self.get_last_row(name)

    # -- reads ------------------------------------------------------------

    def get_cell_value(self, name: str, row: int, col: int) -> Cell:
        self._check_origin(row, col)
        rows = self._sheet(name)
        if row > len(rows) or col > len(rows[row - 1]):
            return None
        value = rows[row - 1][col - 1]
        return None if _is_empty(value) else value

    def get_row(self, name: str, row: int, width: Optional[int] = None) -> List[Cell]:
        """Return ``row`` padded with ``""`` to ``width`` (default: the last used column)."""

        self._check_origin(row, 1)
        if width is None:
            width = self.get_last_column(name)
        rows = self._sheet(name)
        source = rows[row - 1] if row <= len(rows) else []
        return _padded(source, 0, width)

    def get_headers(self, name: str) -> List[Cell]:
        return self.get_row(name, 1)

    def get_range_data(self, name: str, start_row: int, start_col: int) -> Rows:
        """Return the block from ``(start_row, start_col)`` to the last row and column."""

        self._check_origin(start_row, start_col)
        last_row = self.get_last_row(name)
        last_col = self.get_last_column(name)
        if start_row > last_row or start_col > last_col:
            return []
        rows = self._sheet(name)
        return [_padded(rows[index], start_col - 1, last_col) for index in range(start_row - 1, last_row)]

    # -- writes -----------------------------------------------------------

    def set_values_in_defined_range(
        self, name: str, row: int, col: int, values: Sequence[Sequence[Cell]]
    ) -> None:
        self._check_origin(row, col)
        rows = self._sheet(name)
        for offset, new_row in enumerate(values):
            target_index = row - 1 + offset
            while len(rows) <= target_index:
                rows.append([])
            target = rows[target_index]
            needed = col - 1 + len(new_row)
            if len(target) < needed:
                target.extend([""] * (needed - len(target)))
            for col_offset, value in enumerate(new_row):
                target[col - 1 + col_offset] = _clean_cell(value)

    def append_row(self, name: str, values: Sequence[Cell]) -> int:
        row_number = self.get_last_row(name) + 1
        self.set_values_in_defined_range(name, row_number, 1, [list(values)])
        return row_number

    def clear_defined_range(self, name: str, row: int, col: int) -> None:
        """Blank every cell from ``(row, col)`` down to the last row and column."""

        self._check_origin(row, col)
        rows = self._sheet(name)
        for row_index in range(row - 1, len(rows)):
            target = rows[row_index]
            for col_index in range(col - 1, len(target)):
                target[col_index] = ""
        while rows and all(_is_empty(cell) for cell in rows[-1]):
            rows.pop()

    # -- filters ----------------------------------------------------------

    def set_filter(
        self,
        name: str,
        column: int,
        predicate: Callable[[Cell], bool],
        *,
        start_row: int = 1,
    ) -> None:
        """Hide data rows below ``start_row`` whose ``column`` cell fails ``predicate``.

        Each column holds one criterion; setting it again replaces it. A row is
        hidden when any criterion rejects it.
        """

        self._check_origin(start_row, column)
        self._sheet(name)
        criteria = self._filters.setdefault(name, {})
        criteria[column] = _SheetFilter(column=column, predicate=predicate, start_row=start_row)

    def clear_filter(self, name: str, column: Optional[int] = None) -> None:
        """Drop the criterion on ``column``, or every criterion of the sheet."""

        self._sheet(name)
        if column is None:
            self._filters.pop(name, None)
            return
        criteria = self._filters.get(name, {})
        criteria.pop(column, None)
        if not criteria:
            self._filters.pop(name, None)

    def is_row_hidden_by_filter(self, name: str, row: int) -> bool:
        self._check_origin(row, 1)
        self._sheet(name)
        for sheet_filter in self._filters.get(name, {}).values():
            if row <= sheet_filter.start_row:
                continue
            value = self.get_cell_value(name, row, sheet_filter.column)
            if not sheet_filter.predicate("" if value is None else value):
                return True
        return False

    # -- pandas interop ---------------------------------------------------

    def load_frame(self, name: str, df: pd.DataFrame) -> None:
        """Replace ``name`` with the header row and values of ``df``."""

        values = df.astype(object).where(pd.notna(df), "").values.tolist()
        self.add_sheet(name, [list(df.columns), *values])

    def to_frame(self, name: str, *, header_row: int = 1, data_start_row: int | None = None) -> pd.DataFrame:
        """Return a DataFrame using ``header_row`` as column labels."""

        headers = [str(h) if not _is_empty(h) else f"col_{i + 1}" for i, h in enumerate(self.get_row(name, header_row))]
        first_data_row = data_start_row if data_start_row is not None else header_row + 1
        rows = [row[: len(headers)] for row in self.get_range_data(name, first_data_row, 1)] if headers else []
        return pd.DataFrame(rows, columns=headers)

    @classmethod
    def from_workbook(cls, path: str | Path | BinaryIO) -> "SheetStore":
        frames = pd.read_excel(path, sheet_name=None, header=None, dtype=object, engine="openpyxl")
        store = cls()
        for sheet_name, frame in frames.items():
            store.add_sheet(str(sheet_name), frame.where(pd.notna(frame), "").values.tolist())
        _LOGGER.debug("Loaded workbook %s with sheets %s", path, store.sheet_names)
        return store

    def save_workbook(self, path: str | Path | BinaryIO) -> None:
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for sheet_name, rows in self._sheets.items():
                pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        _LOGGER.debug("Saved workbook %s", path)
