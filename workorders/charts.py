from __future__ import annotations

from typing import Any, Dict

import altair as alt

from workorders.status import STATUS_LABELS

alt.data_transformers.disable_max_rows()

STATUS_TITLES = {status.value: label for status, label in STATUS_LABELS.items()}
STATUS_COLORS = {"on_time": "#22c55e", "late": "#ef4444", "pending": "#eab308"}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()
