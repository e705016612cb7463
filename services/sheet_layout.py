"""Workbook layout shared by the generation, approval and export steps."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class Status(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


FAILED_STATUS_DETAIL = f"{Status.FAILED.value}. See log for more details."


@dataclass(frozen=True)
class InputSheet:
    name: str = "Input"
    # Rows above the first data row (1-based start row of data is start_row + 1).
    start_row: int = 1


@dataclass(frozen=True)
class GeneratedColumns:
    """0-based column indices of a generated record."""

    approval: int = 0
    status: int = 1
    id: int = 2
    title_generated: int = 3
    description_generated: int = 4
    category_generated: int = 5
    total_score: int = 6
    title_changed: int = 7
    template_original: int = 8
    template_generated: int = 9
    attributes_added: int = 10
    words_added: int = 11
    gap_attributes: int = 12
    original_input: int = 13
    title_original: int = 14
    description_original: int = 15
    api_response: int = 16


GENERATED_HEADERS: Tuple[str, ...] = (
    "Approval",
    "Status",
    "Item ID",
    "Generated Title",
    "Generated Description",
    "Generated Category",
    "Total Score",
    "Title Changed",
    "Original Title Template",
    "Generated Title Template",
    "Attributes Added",
    "Words Added",
    "Gap Attributes",
    "Original Input",
    "Original Title",
    "Original Description",
    "API Response",
)


@dataclass(frozen=True)
class GeneratedSheet:
    name: str = "Generated"
    start_row: int = 2
    cols: GeneratedColumns = GeneratedColumns()


@dataclass(frozen=True)
class OutputColumn:
    idx: int
    name: str


@dataclass(frozen=True)
class OutputColumns:
    modification_timestamp: int = 0
    id: OutputColumn = OutputColumn(1, "id")
    title: OutputColumn = OutputColumn(2, "title")
    description: OutputColumn = OutputColumn(3, "description")
    gap_start: int = 4


@dataclass(frozen=True)
class OutputSheet:
    name: str = "Output"
    start_row: int = 1
    cols: OutputColumns = OutputColumns()


@dataclass(frozen=True)
class LogSheet:
    name: str = "Log"
    start_row: int = 1


INPUT = InputSheet()
GENERATED = GeneratedSheet()
OUTPUT = OutputSheet()
LOG = LogSheet()
