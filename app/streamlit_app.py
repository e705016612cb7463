from __future__ import annotations

import io
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pandas as pd
import streamlit as st

from connectors.sheets.store import SheetStore
from helpers.eta import ETAEstimator
from services.config import PROVIDERS, ConfigError, load_config
from services.feedgen import FeedGen, prepare_workbook
from services.llm_client import build_text_model
from services.sheet_layout import GENERATED, INPUT, LOG, OUTPUT, Status
from utils.df_sanitize import sanitize_for_arrow
from utils.sheet_log import setup_logging


st.set_page_config(page_title="FeedGen", page_icon="🛍️", layout="wide")
st.title("🛍️ FeedGen — product feed optimisation")

st.session_state.setdefault("store", None)
st.session_state.setdefault("uploaded_name", None)


def _secrets() -> dict:
    try:
        return dict(st.secrets)
    except FileNotFoundError:
        return {}


def _load_store(upload) -> SheetStore:
    name = upload.name.lower()
    if name.endswith((".xlsx", ".xlsm")):
        store = SheetStore.from_workbook(upload)
        if not store.has_sheet(INPUT.name):
            first = store.sheet_names[0]
            frame = store.to_frame(first)
            store.load_frame(INPUT.name, frame)
    else:
        frame = pd.read_csv(upload, dtype=str, keep_default_na=False)
        store = SheetStore()
        store.load_frame(INPUT.name, frame)
    prepare_workbook(store)
    return store


def _workbook_bytes(store: SheetStore) -> bytes:
    buffer = io.BytesIO()
    store.save_workbook(buffer)
    return buffer.getvalue()


# --- Settings ---
secrets = _secrets()
with st.sidebar:
    st.header("Settings")
    provider = st.selectbox(
        "Model provider",
        PROVIDERS,
        index=PROVIDERS.index(str(secrets.get("provider", "vertex")).lower())
        if str(secrets.get("provider", "vertex")).lower() in PROVIDERS
        else 0,
    )
    overrides = {
        "provider": provider,
        "gcp_project_id": st.text_input("GCP project id", value=str(secrets.get("gcp_project_id", ""))),
        "gcp_location": st.text_input("GCP location", value=str(secrets.get("gcp_location", "us-central1"))),
        "model_id": st.text_input("Model id", value=str(secrets.get("model_id", "text-bison"))),
        "item_id_column": st.text_input("Item id column", value=str(secrets.get("item_id_column", "id"))),
        "title_column": st.text_input("Title column", value=str(secrets.get("title_column", "title"))),
        "description_column": st.text_input(
            "Description column", value=str(secrets.get("description_column", "description"))
        ),
    }
    token_input = st.text_input("Access token / API key", type="password")
    if token_input:
        overrides["openai_api_key" if provider == "openai" else "access_token"] = token_input

try:
    config = load_config({**secrets, **{k: v for k, v in overrides.items() if v}})
except ConfigError as exc:
    st.sidebar.error(f"Configuration incomplete: {exc}")
    st.stop()

# --- Workbook ---
upload = st.file_uploader("Input feed (CSV or XLSX)", type=["csv", "xlsx", "xlsm"])
if upload is not None and upload.name != st.session_state["uploaded_name"]:
    st.session_state["store"] = _load_store(upload)
    st.session_state["uploaded_name"] = upload.name

store: SheetStore | None = st.session_state["store"]
if store is None:
    st.info("Upload a product feed to start.")
    st.stop()

setup_logging(store)
feedgen = FeedGen(store, config, build_text_model(config))

generate_tab, review_tab, export_tab, log_tab = st.tabs(["Generate", "Review", "Export", "Log"])

with generate_tab:
    total_input = feedgen.total_input_rows()
    col1, col2 = st.columns(2)
    col1.metric("Input rows", total_input)
    col2.metric("Generated rows", feedgen.total_generated_rows())

    c_run, c_retry, c_clear = st.columns(3)
    if c_run.button("Generate", type="primary"):
        eta = ETAEstimator(total_input, feedgen.next_row_index())
        while True:
            row_index = feedgen.generate_next_row()
            if row_index < 0:
                break
            eta.update(row_index + 1)
        eta.close()
        st.success("Generation finished.")
    if c_retry.button("Retry failed rows"):
        st.info(f"{feedgen.reset_failed_rows()} failed rows will be generated again.")
    if c_clear.button("Clear generated rows"):
        feedgen.clear_generated_rows()
        st.info("Generated rows cleared.")

    with st.expander("JSON context for few-shot examples"):
        item_id = st.text_input("Item id")
        if item_id:
            context = feedgen.json_context_for_item(item_id)
            if context is None:
                st.warning(f"No input row with {config.item_id_column} = {item_id}")
            else:
                st.code(context, language="json")

with review_tab:
    score_col, status_col = st.columns(2)
    min_score = score_col.slider("Minimum total score", 0.0, 1.0, 0.0, step=0.2)
    status_choice = status_col.selectbox("Status", ["All", Status.SUCCESS.value, Status.FAILED.value])

    def _score_visible(value) -> bool:
        try:
            return float(value) >= min_score
        except (TypeError, ValueError):
            return False

    def _status_visible(value) -> bool:
        return isinstance(value, str) and value.startswith(status_choice)

    if min_score > 0:
        store.set_filter(
            GENERATED.name,
            GENERATED.cols.total_score + 1,
            _score_visible,
            start_row=GENERATED.start_row,
        )
    else:
        store.clear_filter(GENERATED.name, GENERATED.cols.total_score + 1)

    if status_choice != "All":
        store.set_filter(
            GENERATED.name,
            GENERATED.cols.status + 1,
            _status_visible,
            start_row=GENERATED.start_row,
        )
    else:
        store.clear_filter(GENERATED.name, GENERATED.cols.status + 1)

    generated_df = store.to_frame(GENERATED.name, header_row=GENERATED.start_row)
    if not generated_df.empty:
        first_data_row = GENERATED.start_row + 1
        visible = [
            not store.is_row_hidden_by_filter(GENERATED.name, first_data_row + offset)
            for offset in range(len(generated_df))
        ]
        generated_df = generated_df[visible]
    st.dataframe(sanitize_for_arrow(generated_df), use_container_width=True)

    if st.button("Approve filtered", type="primary"):
        approved = feedgen.approve_filtered()
        st.success(f"Approved {approved} rows.")
        st.rerun()

with export_tab:
    if st.button("Export approved", type="primary"):
        table = feedgen.export_approved()
        if table is None:
            st.warning("No approved rows to export.")
        else:
            st.success(f"Exported {len(table.rows)} rows.")
    output_df = store.to_frame(OUTPUT.name, header_row=OUTPUT.start_row)
    st.dataframe(sanitize_for_arrow(output_df), use_container_width=True)
    st.download_button(
        "Download supplemental feed (CSV)",
        output_df.to_csv(index=False).encode("utf-8"),
        file_name="feedgen_output.csv",
        mime="text/csv",
        disabled=output_df.empty,
    )
    st.download_button(
        "Download workbook (XLSX)",
        _workbook_bytes(store),
        file_name="feedgen.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

with log_tab:
    st.dataframe(sanitize_for_arrow(store.to_frame(LOG.name)), use_container_width=True)
