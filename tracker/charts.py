from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

SERIES_LABELS = {"detected": "Phát hiện", "processed": "Đã xử lý", "operator_notes": "NVVH"}
SERIES_COLORS = ["#3b82f6", "#10b981", "#f59e0b"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def category_activity_chart(summaries: List[Dict[str, Any]]) -> alt.Chart:
    """Grouped bars of detected / processed / operator-note counts per category."""
    frame = pd.DataFrame(summaries, columns=["short_name", "detected", "processed", "operator_notes"])
    long_df = frame.melt(
        id_vars="short_name",
        value_vars=list(SERIES_LABELS),
        var_name="series",
        value_name="count",
    )
    long_df["series"] = long_df["series"].map(SERIES_LABELS)
    order = [s["short_name"] for s in summaries]
    return (
        alt.Chart(long_df)
        .mark_bar(cornerRadiusTopLeft=4, cornerRadiusTopRight=4, size=8)
        .encode(
            x=alt.X("short_name:N", title=None, sort=order, axis=alt.Axis(labelAngle=0)),
            xOffset=alt.XOffset("series:N", sort=list(SERIES_LABELS.values())),
            y=alt.Y("count:Q", title=None, axis=alt.Axis(format="d", gridDash=[3, 3], domain=False, ticks=False)),
            color=alt.Color(
                "series:N",
                title=None,
                sort=list(SERIES_LABELS.values()),
                scale=alt.Scale(domain=list(SERIES_LABELS.values()), range=SERIES_COLORS),
                legend=alt.Legend(orient="bottom"),
            ),
            tooltip=[
                alt.Tooltip("short_name:N", title="Phân loại"),
                alt.Tooltip("series:N", title="Chỉ số"),
                alt.Tooltip("count:Q", title="Số lượng"),
            ],
        )
        .properties(height=260)
    )
