from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable

import altair as alt
import pandas as pd

from workorders.charts import STATUS_COLORS, STATUS_TITLES, to_vega_spec
from workorders.data import round_half_up
from workorders.export import record_to_dict
from workorders.filters import EngineSettings, FilterState, compliance_view
from workorders.models import DeliveryStatus, GlobalStats, ReconciliationResult, WorkOrderRecord, WorkshopStats
from workorders.status import classify


PREVIEW_ROWS = 100


def _rate(on_time: int, total: int) -> float:
    return round_half_up(on_time / total * 100, 2) if total else 0.0


def stats_frame(records: Iterable[WorkOrderRecord]) -> pd.DataFrame:
    rows = [{"workshop": r.workshop, "amount": r.amount, "status": classify(r).value} for r in records]
    df = pd.DataFrame(rows, columns=["workshop", "amount", "status"])
    for status in DeliveryStatus:
        df[status.value] = (df["status"] == status.value).astype(int)
    return df


def compute_stats(records: Iterable[WorkOrderRecord]) -> GlobalStats:
    """Global and per-workshop tallies over an already-filtered record set."""
    df = stats_frame(records)
    if df.empty:
        return GlobalStats()

    grouped = (
        df.groupby("workshop", sort=False)
        .agg(
            total_ots=("status", "size"),
            on_time=(DeliveryStatus.ON_TIME.value, "sum"),
            late=(DeliveryStatus.LATE.value, "sum"),
            pending=(DeliveryStatus.PENDING.value, "sum"),
            total_amount=("amount", "sum"),
        )
        .reset_index()
        .sort_values("total_ots", ascending=False, kind="stable")
    )

    workshops = tuple(
        WorkshopStats(
            name=str(row.workshop),
            total_ots=int(row.total_ots),
            on_time=int(row.on_time),
            late=int(row.late),
            pending=int(row.pending),
            compliance_rate=_rate(int(row.on_time), int(row.total_ots)),
            total_amount=float(row.total_amount),
        )
        for row in grouped.itertuples(index=False)
    )

    total = int(len(df))
    on_time = int(df[DeliveryStatus.ON_TIME.value].sum())
    return GlobalStats(
        total_ots=total,
        total_on_time=on_time,
        total_late=int(df[DeliveryStatus.LATE.value].sum()),
        total_pending=int(df[DeliveryStatus.PENDING.value].sum()),
        average_compliance=_rate(on_time, total),
        total_amount=float(df["amount"].sum()),
        workshops=workshops,
    )


def _status_chart(stats: GlobalStats) -> Dict[str, Any]:
    src = pd.DataFrame(
        [
            {"status": STATUS_TITLES["on_time"], "count": stats.total_on_time},
            {"status": STATUS_TITLES["late"], "count": stats.total_late},
            {"status": STATUS_TITLES["pending"], "count": stats.total_pending},
        ]
    )
    donut = (
        alt.Chart(src)
        .mark_arc(innerRadius=60, outerRadius=80)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color(
                "status:N",
                scale=alt.Scale(domain=list(STATUS_TITLES.values()), range=list(STATUS_COLORS.values())),
                title="Estado",
            ),
            tooltip=["status", "count"],
        )
    )
    return to_vega_spec(donut)


def _workshop_chart(stats: GlobalStats) -> Dict[str, Any]:
    src = pd.DataFrame(
        [
            {"workshop": w.name, "status": STATUS_TITLES[key], "count": getattr(w, key)}
            for w in stats.workshops
            for key in ("on_time", "late", "pending")
        ],
        columns=["workshop", "status", "count"],
    )
    bars = (
        alt.Chart(src)
        .mark_bar()
        .encode(
            x=alt.X("workshop:N", title="Taller", sort=[w.name for w in stats.workshops]),
            y=alt.Y("count:Q", stack="zero", title="OTs", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(
                "status:N",
                scale=alt.Scale(domain=list(STATUS_TITLES.values()), range=list(STATUS_COLORS.values())),
                title="Estado",
            ),
            tooltip=["workshop", "status", "count"],
        )
        .properties(height=260)
    )
    return to_vega_spec(bars)


def compute_compliance(
    filters: FilterState,
    result: ReconciliationResult,
    settings: EngineSettings,
    *,
    preview_rows: int = PREVIEW_ROWS,
) -> Dict[str, Any]:
    records = compliance_view(result.unique_records, filters, settings)
    stats = compute_stats(records)

    charts: Dict[str, Any] = {}
    if stats.total_ots:
        charts = {"status_split": _status_chart(stats), "workshop_status": _workshop_chart(stats)}

    return {
        "filters": asdict(filters),
        "stats": asdict(stats),
        "record_count": len(records),
        "records": [record_to_dict(r) for r in records[: max(0, preview_rows)]],
        "charts": charts,
    }
