from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, List

import altair as alt
import pandas as pd

from workorders.charts import to_vega_spec
from workorders.export import record_to_dict
from workorders.filters import EngineSettings, FilterState, filter_records, financial_view
from workorders.metrics_compliance import compute_stats
from workorders.models import ClaimsSummary, GlobalStats, ReconciliationResult, WorkOrderRecord


PREVIEW_ROWS = 100
CLAIMS_PREVIEW_ROWS = 500


def is_claim(record: WorkOrderRecord, settings: EngineSettings) -> bool:
    return (
        record.client_code == settings.claims_client_code
        and settings.claim_keyword in (record.ot_type or "").lower()
    )


def select_claims(
    records: Iterable[WorkOrderRecord], filters: FilterState, settings: EngineSettings
) -> ClaimsSummary:
    """Claim rows for the designated client, narrowed by the active filters.

    Runs over the full row view; the internal-client exclusion does not apply
    here since the claims client is itself an internal code.
    """
    matches = filter_records((r for r in records if is_claim(r, settings)), filters)
    return ClaimsSummary(
        records=tuple(matches),
        row_count=len(matches),
        unique_ot_count=len({r.id for r in matches}),
        total_amount=float(sum(r.amount for r in matches)),
    )


def claims_to_dict(claims: ClaimsSummary, *, preview_rows: int = CLAIMS_PREVIEW_ROWS) -> Dict[str, Any]:
    return {
        "row_count": claims.row_count,
        "unique_ot_count": claims.unique_ot_count,
        "total_amount": claims.total_amount,
        "records": [record_to_dict(r) for r in claims.records[: max(0, preview_rows)]],
    }


def _amount_chart(stats: GlobalStats) -> Dict[str, Any]:
    src = pd.DataFrame(
        [{"workshop": w.name, "total_amount": w.total_amount, "rows": w.total_ots} for w in stats.workshops],
        columns=["workshop", "total_amount", "rows"],
    )
    bar = (
        alt.Chart(src)
        .mark_bar(color="#16a34a")
        .encode(
            x=alt.X("workshop:N", title="Taller", sort="-y"),
            y=alt.Y("total_amount:Q", title="Importe", axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=["workshop", alt.Tooltip("total_amount:Q", format=",.0f"), "rows"],
        )
        .properties(height=260)
    )
    return to_vega_spec(bar)


def compute_finance(
    filters: FilterState,
    result: ReconciliationResult,
    settings: EngineSettings,
    *,
    preview_rows: int = PREVIEW_ROWS,
) -> Dict[str, Any]:
    records: List[WorkOrderRecord] = financial_view(result.all_records, filters, settings)
    stats = compute_stats(records)
    claims = select_claims(result.all_records, filters, settings)

    charts: Dict[str, Any] = {}
    if stats.workshops:
        charts["amount_by_workshop"] = _amount_chart(stats)

    return {
        "filters": asdict(filters),
        "kpis": {
            "row_count": len(records),
            "total_amount": stats.total_amount,
        },
        "stats": asdict(stats),
        "claims": claims_to_dict(claims, preview_rows=0),
        "records": [record_to_dict(r) for r in records[: max(0, preview_rows)]],
        "charts": charts,
    }


def compute_claims(
    filters: FilterState,
    result: ReconciliationResult,
    settings: EngineSettings,
    *,
    preview_rows: int = CLAIMS_PREVIEW_ROWS,
) -> Dict[str, Any]:
    claims = select_claims(result.all_records, filters, settings)
    return {
        "filters": asdict(filters),
        "claims_client_code": settings.claims_client_code,
        **claims_to_dict(claims, preview_rows=preview_rows),
    }
