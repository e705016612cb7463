import math
import time

import streamlit as st


class ETAEstimator:
    """Progress bar with a remaining-time estimate for the row generation loop."""

    def __init__(self, total_rows: int, done_rows: int = 0):
        self.start_time = time.time()
        self.total_rows = max(total_rows, 0)
        self.initial_done = done_rows
        self.done_rows = done_rows
        self.progress = st.progress(self.fraction_done, text=self.label())

    @property
    def fraction_done(self) -> float:
        if not self.total_rows:
            return 1.0
        return min(self.done_rows / self.total_rows, 1.0)

    def remaining_seconds(self) -> float | None:
        processed = self.done_rows - self.initial_done
        if processed <= 0:
            return None
        per_row = (time.time() - self.start_time) / processed
        return per_row * max(self.total_rows - self.done_rows, 0)

    def estimate_text(self) -> str:
        remaining = self.remaining_seconds()
        if remaining is None:
            return "ETA: calculating..."
        if remaining < 60:
            return f"ETA: ~{int(remaining)} sec"
        minutes = math.ceil(remaining / 60.0)
        return f"ETA: ~{minutes} minute{'s' if minutes != 1 else ''}"

    def label(self) -> str:
        return f"Generated {self.done_rows} / {self.total_rows} rows · {self.estimate_text()}"

    def update(self, done_rows: int) -> None:
        self.done_rows = done_rows
        self.progress.progress(self.fraction_done, text=self.label())

    def close(self) -> None:
        self.progress.empty()
