"""Mirror application log records into the workbook's ``Log`` sheet."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from connectors.sheets.store import SheetStore
from services.sheet_layout import LOG

LOGGER_NAMES: tuple[str, ...] = ("services", "connectors", "utils")
LOG_HEADERS = ("Timestamp", "Message")


class SheetLogHandler(logging.Handler):
    """Append ``[timestamp, message]`` rows to a sheet of ``store``."""

    def __init__(self, store: SheetStore, sheet_name: str = LOG.name, level: int = logging.INFO):
        super().__init__(level=level)
        self.store = store
        self.sheet_name = sheet_name
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.store.ensure_sheet(self.sheet_name)
            if self.store.get_last_row(self.sheet_name) == 0:
                self.store.append_row(self.sheet_name, list(LOG_HEADERS))
            timestamp = datetime.fromtimestamp(record.created).isoformat(sep=" ", timespec="seconds")
            self.store.append_row(self.sheet_name, [timestamp, self.format(record)])
        except Exception:
            self.handleError(record)


def setup_logging(
    store: SheetStore,
    *,
    level: int = logging.INFO,
    logger_names: Iterable[str] = LOGGER_NAMES,
) -> SheetLogHandler:
    """Attach a single :class:`SheetLogHandler` for ``store`` to the app loggers.

    Handlers installed for a previous store are replaced, so calling this on
    every Streamlit rerun does not duplicate log rows.
    """

    handler = SheetLogHandler(store, level=level)
    for name in logger_names:
        logger = logging.getLogger(name)
        for existing in list(logger.handlers):
            if isinstance(existing, SheetLogHandler):
                logger.removeHandler(existing)
        logger.addHandler(handler)
        if logger.level == logging.NOTSET or logger.level > level:
            logger.setLevel(level)
    return handler


def clear_log(store: SheetStore, sheet_name: Optional[str] = None) -> None:
    name = sheet_name or LOG.name
    if store.has_sheet(name):
        store.clear_defined_range(name, LOG.start_row, 1)
