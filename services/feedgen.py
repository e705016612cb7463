"""Row-by-row feed optimisation driver over a :class:`SheetStore` workbook."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence

from connectors.sheets.store import InvalidRangeError, SheetNotFoundError, SheetStore
from services.config import FeedGenConfig, ModelParameters
from services.export import ExportTable, approved_rows, build_export_table
from services.feed_parser import parse_title_response
from services.llm_client import TextModel, execute_with_retry
from services.metrics import collect_input_words, score_generation
from services.prompts import (
    build_description_prompt,
    build_title_prompt,
    context_json,
    row_context,
)
from services.reconcile import reconcile_title
from services.sheet_layout import (
    FAILED_STATUS_DETAIL,
    GENERATED,
    GENERATED_HEADERS,
    INPUT,
    LOG,
    OUTPUT,
    Status,
)
from utils.sheet_log import clear_log

logger = logging.getLogger(__name__)

GENERATED_BANNER = "FeedGen"
TIMESTAMP_HEADER = "timestamp"


def _is_failed_status(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(Status.FAILED.value)


def prepare_workbook(store: SheetStore) -> None:
    """Create the Generated, Output and Log sheets next to an uploaded Input sheet."""

    store.ensure_sheet(GENERATED.name)
    if store.get_last_row(GENERATED.name) < GENERATED.start_row:
        store.set_values_in_defined_range(
            GENERATED.name, 1, 1, [[GENERATED_BANNER], list(GENERATED_HEADERS)]
        )
    store.ensure_sheet(OUTPUT.name)
    if store.get_cell_value(OUTPUT.name, OUTPUT.start_row, OUTPUT.cols.modification_timestamp + 1) is None:
        store.set_values_in_defined_range(
            OUTPUT.name,
            OUTPUT.start_row,
            OUTPUT.cols.modification_timestamp + 1,
            [[TIMESTAMP_HEADER]],
        )
    store.ensure_sheet(LOG.name)


class FeedGen:
    """Generate, approve and export optimised feed rows.

    Each :meth:`generate_next_row` call handles exactly one input row so a UI
    loop can report progress between calls.
    """

    def __init__(self, store: SheetStore, config: FeedGenConfig, model: TextModel):
        self.store = store
        self.config = config
        self.model = model

    # -- generation -------------------------------------------------------

    def _predict(self, prompt: str, params: ModelParameters) -> str:
        return execute_with_retry(
            self.config.max_retries,
            lambda: self.model.predict(prompt, params),
            self.config.retry_delay_seconds,
        )

    def optimize_row(self, headers: Sequence[Any], values: Sequence[Any]) -> List[Any]:
        """Generate title, description and metrics for one input row."""

        cfg = self.config
        data = row_context(headers, values)
        item_id = data.get(cfg.item_id_column, "")
        original_title = data.get(cfg.title_column, "")
        original_description = data.get(cfg.description_column, "")

        response = self._predict(build_title_prompt(cfg.title_prompt, data), cfg.title_parameters)
        parsed = parse_title_response(response)
        reconciled = reconcile_title(
            data,
            parsed.original_attributes,
            parsed.generated_attributes,
            parsed.generated_values,
        )

        description = self._predict(
            build_description_prompt(cfg.description_prompt, data, reconciled.title),
            cfg.description_parameters,
        )

        metrics = score_generation(
            original_title,
            reconciled.title,
            parsed.original_attributes,
            parsed.generated_attributes,
            collect_input_words(data),
            reconciled.gap_attributes,
            data,
        )

        record: List[Any] = [""] * len(GENERATED_HEADERS)
        cols = GENERATED.cols
        record[cols.approval] = False
        record[cols.status] = Status.SUCCESS.value
        record[cols.id] = item_id
        record[cols.title_generated] = reconciled.title
        record[cols.description_generated] = description
        record[cols.category_generated] = parsed.category
        record[cols.total_score] = metrics.total_score
        record[cols.title_changed] = metrics.title_changed
        record[cols.template_original] = parsed.original_template
        record[cols.template_generated] = parsed.generated_template
        record[cols.attributes_added] = metrics.attributes_added_display
        record[cols.words_added] = metrics.words_added_display
        record[cols.gap_attributes] = (
            context_json(reconciled.gap_attributes) if reconciled.gap_attributes else ""
        )
        record[cols.original_input] = context_json(data)
        record[cols.title_original] = original_title
        record[cols.description_original] = original_description
        record[cols.api_response] = f"{response}\nproduct description: {description}"
        return record

    def next_row_index(self) -> int:
        """Index of the first generated row still pending.

        Rows with a ``Success`` or ``Failed`` status are done; a failed row
        is picked up again only after :meth:`reset_failed_rows`.
        """

        first_data_row = GENERATED.start_row + 1
        last_row = self.store.get_last_row(GENERATED.name)
        status_col = GENERATED.cols.status + 1
        for row_number in range(first_data_row, last_row + 1):
            status = self.store.get_cell_value(GENERATED.name, row_number, status_col)
            if status != Status.SUCCESS.value and not _is_failed_status(status):
                return row_number - first_data_row
        return max(last_row - GENERATED.start_row, 0)

    def generate_next_row(self) -> int:
        """Generate the next pending row; return its index, or ``-1`` when done."""

        row_index = self.next_row_index()
        if row_index >= self.total_input_rows():
            return -1
        logger.info("Generating for row %s", row_index)

        values = self.store.get_row(INPUT.name, INPUT.start_row + 1 + row_index)
        target_row = GENERATED.start_row + 1 + row_index
        try:
            headers = self.store.get_headers(INPUT.name)
            record = self.optimize_row(headers, values)
            self.store.set_values_in_defined_range(GENERATED.name, target_row, 1, [record])
            logger.info(Status.SUCCESS.value)
        except (SheetNotFoundError, InvalidRangeError):
            raise
        except Exception as exc:
            logger.exception("Error: %s", exc)
            self.store.set_values_in_defined_range(
                GENERATED.name,
                target_row,
                GENERATED.cols.status + 1,
                [[FAILED_STATUS_DETAIL]],
            )
        return row_index

    def reset_failed_rows(self) -> int:
        """Blank the status of failed rows so they are generated again."""

        status_col = GENERATED.cols.status + 1
        reset = 0
        for row_number in range(GENERATED.start_row + 1, self.store.get_last_row(GENERATED.name) + 1):
            if _is_failed_status(self.store.get_cell_value(GENERATED.name, row_number, status_col)):
                self.store.set_values_in_defined_range(GENERATED.name, row_number, status_col, [[""]])
                reset += 1
        if reset:
            logger.info("Reset %s failed rows", reset)
        return reset

    def total_input_rows(self) -> int:
        return max(self.store.get_total_rows(INPUT.name) - INPUT.start_row, 0)

    def total_generated_rows(self) -> int:
        return max(self.store.get_total_rows(GENERATED.name) - GENERATED.start_row, 0)

    def json_context_for_item(self, item_id: Any) -> Optional[str]:
        """JSON object of the input row for ``item_id``, for few-shot prompt examples."""

        headers = self.store.get_headers(INPUT.name)
        column = self.config.item_id_column
        if column not in headers:
            return None
        id_index = headers.index(column)
        for values in self.store.get_range_data(INPUT.name, INPUT.start_row + 1, 1):
            if str(values[id_index]) == str(item_id):
                return json.dumps(row_context(headers, values), ensure_ascii=False, default=str)
        return None

    # -- review -----------------------------------------------------------

    def _generated_rows(self) -> List[List[Any]]:
        return self.store.get_range_data(GENERATED.name, GENERATED.start_row + 1, 1)

    def approve_filtered(self) -> int:
        """Approve every generated row visible under the current sheet filter."""

        logger.info("Approving filtered rows...")
        rows = self._generated_rows()
        if not rows:
            return 0
        approval = GENERATED.cols.approval
        approved = 0
        for index, row in enumerate(rows):
            if not self.store.is_row_hidden_by_filter(GENERATED.name, index + GENERATED.start_row + 1):
                row[approval] = True
                approved += 1
        self.store.set_values_in_defined_range(GENERATED.name, GENERATED.start_row + 1, 1, rows)
        logger.info("Writing approved rows...")
        return approved

    def export_approved(self) -> Optional[ExportTable]:
        """Write approved rows to the Output sheet; no-op when nothing is approved."""

        logger.info("Exporting approved rows...")
        rows = approved_rows(self._generated_rows())
        if not rows:
            return None

        table = build_export_table(rows)
        id_col = OUTPUT.cols.id.idx + 1

        logger.info("Clearing approved data...")
        self.store.clear_defined_range(OUTPUT.name, OUTPUT.start_row, id_col)
        self.store.clear_defined_range(OUTPUT.name, OUTPUT.start_row + 1, 1)

        logger.info("Writing approved data...")
        self.store.set_values_in_defined_range(OUTPUT.name, OUTPUT.start_row, id_col, [table.header])
        self.store.set_values_in_defined_range(OUTPUT.name, OUTPUT.start_row + 1, 1, table.rows)
        return table

    def clear_generated_rows(self) -> None:
        logger.info("Clearing generated rows...")
        clear_log(self.store)
        self.store.clear_defined_range(GENERATED.name, GENERATED.start_row + 1, 1)
