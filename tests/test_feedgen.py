import json
import logging

import pytest

from connectors.sheets.store import SheetNotFoundError, SheetStore
from services.config import FeedGenConfig
from services.feedgen import FeedGen, prepare_workbook
from services.sheet_layout import (
    FAILED_STATUS_DETAIL,
    GENERATED,
    GENERATED_HEADERS,
    INPUT,
    LOG,
    OUTPUT,
)
from utils.sheet_log import LOGGER_NAMES, SheetLogHandler, setup_logging


TITLE_RESPONSE = (
    "product attribute keys in original title:color|\n"
    "product category:Footwear\n"
    "product attribute keys:color|size|\n"
    "product attribute values:Red|10|"
)

CONFIG = FeedGenConfig(item_id_column="item_id", max_retries=2)


class FakeModel:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def predict(self, prompt, params):
        self.calls.append((prompt, params))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_store(*rows):
    store = SheetStore({INPUT.name: [["item_id", "title", "color"], *rows]})
    prepare_workbook(store)
    return store


def generated_record(store, index):
    return store.get_row(GENERATED.name, GENERATED.start_row + 1 + index)


@pytest.fixture
def sheet_logging():
    handlers = []

    def _attach(store):
        handler = setup_logging(store)
        handlers.append(handler)
        return handler

    yield _attach

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if isinstance(handler, SheetLogHandler):
                logger.removeHandler(handler)


def test_prepare_workbook_creates_sheets():
    store = make_store()

    assert store.get_row(GENERATED.name, GENERATED.start_row) == list(GENERATED_HEADERS)
    assert store.get_cell_value(OUTPUT.name, 1, 1) == "timestamp"
    assert store.has_sheet(LOG.name)


def test_generate_next_row_writes_optimized_record():
    store = make_store(["1", "Red Shoe", ""])
    model = FakeModel([TITLE_RESPONSE, "A red shoe."])
    feedgen = FeedGen(store, CONFIG, model)

    assert feedgen.generate_next_row() == 0

    record = generated_record(store, 0)
    cols = GENERATED.cols
    assert record[cols.approval] is False
    assert record[cols.status] == "Success"
    assert record[cols.id] == "1"
    assert record[cols.title_generated] == "Red 10"
    assert record[cols.description_generated] == "A red shoe."
    assert record[cols.category_generated] == "Footwear"
    assert record[cols.total_score] == pytest.approx(0.8)
    assert record[cols.title_changed] is True
    assert record[cols.template_original] == "<color>"
    assert record[cols.template_generated] == "<color> <size>"
    assert record[cols.attributes_added] == "<size>"
    assert record[cols.words_added] == "10"
    assert json.loads(record[cols.gap_attributes]) == {"color": "Red", "size": "10"}
    assert json.loads(record[cols.original_input]) == {"item_id": "1", "title": "Red Shoe", "color": ""}
    assert record[cols.title_original] == "Red Shoe"
    assert record[cols.description_original] == ""
    assert record[cols.api_response] == f"{TITLE_RESPONSE}\nproduct description: A red shoe."

    title_prompt, title_params = model.calls[0]
    description_prompt, description_params = model.calls[1]
    assert title_prompt.startswith(CONFIG.title_prompt)
    assert title_prompt.endswith('Context: {"item_id":"1","title":"Red Shoe","color":""}\n\n')
    assert '"Generated Title":"Red 10"' in description_prompt
    assert title_params == CONFIG.title_parameters
    assert description_params == CONFIG.description_parameters

    assert feedgen.generate_next_row() == -1
    assert feedgen.total_generated_rows() == 1


def test_generate_next_row_records_failure_and_continues():
    store = make_store(["1", "Red Shoe", ""], ["2", "Blue Hat", "Blue"])
    model = FakeModel(
        [RuntimeError("quota"), RuntimeError("quota"), TITLE_RESPONSE, "A blue hat."]
    )
    feedgen = FeedGen(store, CONFIG, model)

    assert feedgen.generate_next_row() == 0
    assert generated_record(store, 0)[GENERATED.cols.status] == FAILED_STATUS_DETAIL
    assert len(model.calls) == 2

    assert feedgen.generate_next_row() == 1
    assert generated_record(store, 1)[GENERATED.cols.status] == "Success"
    assert feedgen.generate_next_row() == -1


def test_malformed_response_fails_the_row_only():
    store = make_store(["1", "Red Shoe", ""])
    feedgen = FeedGen(store, CONFIG, FakeModel(["product category:Footwear"]))

    assert feedgen.generate_next_row() == 0
    assert generated_record(store, 0)[GENERATED.cols.status] == FAILED_STATUS_DETAIL
    assert feedgen.next_row_index() == 1


def test_reset_failed_rows_makes_them_pending_again():
    store = make_store(["1", "Red Shoe", ""])
    feedgen = FeedGen(store, CONFIG, FakeModel(["broken", TITLE_RESPONSE, "A red shoe."]))

    feedgen.generate_next_row()
    assert feedgen.reset_failed_rows() == 1
    assert feedgen.next_row_index() == 0

    assert feedgen.generate_next_row() == 0
    assert generated_record(store, 0)[GENERATED.cols.status] == "Success"


def test_next_row_index_resumes_after_successful_rows():
    store = make_store(["1", "a", ""], ["2", "b", ""], ["3", "c", ""])
    store.set_values_in_defined_range(
        GENERATED.name,
        GENERATED.start_row + 1,
        GENERATED.cols.status + 1,
        [["Success"], [""], ["Success"]],
    )
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    assert feedgen.next_row_index() == 1
    assert feedgen.total_input_rows() == 3


def test_missing_input_sheet_is_fatal():
    store = SheetStore()
    prepare_workbook(store)
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    with pytest.raises(SheetNotFoundError):
        feedgen.generate_next_row()


def test_json_context_for_item():
    store = make_store(["1", "Red Shoe", ""], [2, "Blue Hat", "Blue"])
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    assert json.loads(feedgen.json_context_for_item("1")) == {
        "item_id": "1",
        "title": "Red Shoe",
        "color": "",
    }
    assert json.loads(feedgen.json_context_for_item("2"))["title"] == "Blue Hat"
    assert feedgen.json_context_for_item("missing") is None


def _record(item_id, score, *, approved=False, gaps="", original=""):
    record = [""] * len(GENERATED_HEADERS)
    cols = GENERATED.cols
    record[cols.approval] = approved
    record[cols.status] = "Success"
    record[cols.id] = item_id
    record[cols.title_generated] = f"Title {item_id}"
    record[cols.description_generated] = f"Desc {item_id}"
    record[cols.total_score] = score
    record[cols.gap_attributes] = gaps
    record[cols.original_input] = original
    return record


def _store_with_records(*records):
    store = make_store()
    store.set_values_in_defined_range(GENERATED.name, GENERATED.start_row + 1, 1, list(records))
    return store


def test_approve_filtered_only_approves_visible_rows():
    store = _store_with_records(_record("A", 0.8), _record("B", 0.2), _record("C", 1.0))
    store.set_filter(
        GENERATED.name,
        GENERATED.cols.total_score + 1,
        lambda value: float(value) >= 0.6,
        start_row=GENERATED.start_row,
    )
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    assert feedgen.approve_filtered() == 2

    approvals = [generated_record(store, i)[GENERATED.cols.approval] for i in range(3)]
    assert approvals == [True, False, True]


def test_approve_filtered_without_filter_approves_everything():
    store = _store_with_records(_record("A", 0.8), _record("B", 0.2))
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    assert feedgen.approve_filtered() == 2


def test_export_approved_writes_header_and_rows():
    store = _store_with_records(
        _record("A", 0.8, approved=True, gaps='{"color":"Red"}', original='{"color":""}'),
        _record("B", 0.6, approved=True, gaps='{"material":"Wood"}', original='{"size":"M"}'),
        _record("C", 0.4, gaps='{"finish":"Matte"}', original='{"finish":""}'),
    )
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    table = feedgen.export_approved()

    assert table is not None
    assert store.get_row(OUTPUT.name, OUTPUT.start_row) == [
        "timestamp",
        "id",
        "title",
        "description",
        "color",
        "new_material",
    ]
    row_a = store.get_row(OUTPUT.name, OUTPUT.start_row + 1)
    row_b = store.get_row(OUTPUT.name, OUTPUT.start_row + 2)
    assert row_a[1:] == ["A", "Title A", "Desc A", "Red", ""]
    assert row_b[1:] == ["B", "Title B", "Desc B", "", "Wood"]
    assert row_a[0].endswith("Z")
    assert store.get_total_rows(OUTPUT.name) == OUTPUT.start_row + 2


def test_export_approved_replaces_previous_output():
    store = _store_with_records(
        _record("A", 0.8, approved=True, gaps='{"color":"Red","size":"L"}', original='{"color":""}'),
        _record("B", 0.8, approved=True),
    )
    feedgen = FeedGen(store, CONFIG, FakeModel([]))
    feedgen.export_approved()

    store.set_values_in_defined_range(
        GENERATED.name, GENERATED.start_row + 1, 1, [_record("A", 0.8, approved=True)]
    )
    feedgen.export_approved()

    assert store.get_row(OUTPUT.name, OUTPUT.start_row) == ["timestamp", "id", "title", "description"]
    assert store.get_total_rows(OUTPUT.name) == OUTPUT.start_row + 2


def test_export_approved_skips_failed_rows_without_item_id():
    store = make_store(["1", "Red Shoe", ""], ["2", "Blue Hat", "Blue"])
    model = FakeModel(
        [RuntimeError("quota"), RuntimeError("quota"), TITLE_RESPONSE, "A blue hat."]
    )
    feedgen = FeedGen(store, CONFIG, model)
    feedgen.generate_next_row()
    feedgen.generate_next_row()

    assert feedgen.approve_filtered() == 2
    table = feedgen.export_approved()

    assert table is not None
    assert [row[1] for row in table.rows] == ["2"]
    assert store.get_total_rows(OUTPUT.name) == OUTPUT.start_row + 1
    assert store.get_cell_value(OUTPUT.name, OUTPUT.start_row + 1, 2) == "2"


def test_export_approved_without_approved_rows_writes_nothing():
    store = _store_with_records(_record("A", 0.8), _record("B", 0.2))
    store.set_values_in_defined_range(OUTPUT.name, 2, 1, [["old", "row"]])
    before = store.get_range_data(OUTPUT.name, 1, 1)
    feedgen = FeedGen(store, CONFIG, FakeModel([]))

    assert feedgen.export_approved() is None
    assert store.get_range_data(OUTPUT.name, 1, 1) == before


def test_generation_is_logged_and_clear_wipes_log(sheet_logging):
    store = make_store(["1", "Red Shoe", ""])
    sheet_logging(store)
    feedgen = FeedGen(store, CONFIG, FakeModel([TITLE_RESPONSE, "A red shoe."]))

    feedgen.generate_next_row()

    messages = [row[1] for row in store.get_range_data(LOG.name, 2, 1)]
    assert "Generating for row 0" in messages
    assert "Success" in messages

    feedgen.clear_generated_rows()

    assert store.get_total_rows(LOG.name) == 0
    assert feedgen.total_generated_rows() == 0
    assert feedgen.next_row_index() == 0


def test_sheet_logging_attaches_to_every_project_package(sheet_logging):
    store = make_store()
    handler = sheet_logging(store)

    packages = {obj.__module__.split(".")[0] for obj in (FeedGen, SheetStore, setup_logging)}
    assert set(LOGGER_NAMES) == packages
    for name in LOGGER_NAMES:
        assert handler in logging.getLogger(name).handlers
