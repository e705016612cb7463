import json
import math
from typing import Any

import numpy as np
import pandas as pd


def _to_scalar_str(x: Any):
    """Convert arbitrary cell value to an Arrow-friendly scalar/str representation."""
    # None/NaN → None so Arrow sees an empty cell
    if x is None:
        return None
    if isinstance(x, float) and math.isnan(x):
        return None

    if isinstance(x, (bytes, bytearray)):
        return x.decode("utf-8", errors="replace")

    if isinstance(x, (list, tuple, set, dict)):
        try:
            return json.dumps(list(x) if isinstance(x, set) else x, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(x)

    if not isinstance(x, (str, int, float, bool, np.number, np.bool_)):
        return str(x)

    return x


def _mixed_types(s: pd.Series) -> bool:
    kinds = {type(v) for v in s if v is not None}
    return len(kinds) > 1


def sanitize_for_arrow(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of a sheet DataFrame safe to show with ``st.dataframe``.

    Sheet columns mix booleans, numbers and blank strings; such columns are
    rendered as text.
    """
    df = df.copy()

    for col in df.columns:
        s = df[col]

        if isinstance(s.dtype, pd.DatetimeTZDtype):
            df[col] = s.dt.tz_convert(None)
            continue

        if s.dtype == "object":
            s = s.map(_to_scalar_str)
            if _mixed_types(s):
                s = s.map(lambda v: "" if v is None else str(v))
            df[col] = s

        elif isinstance(s.dtype, pd.CategoricalDtype):
            df[col] = s.astype(str)

    return df
