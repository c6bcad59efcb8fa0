from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from workorders.filters import filter_options
from workorders.models import ColumnMapping, ReconciliationResult


def compute_audit(result: ReconciliationResult) -> Dict[str, Any]:
    report = result.report
    return {
        "row_counts": {
            "total_rows": report.total_rows,
            "empty_rows": report.empty_rows,
            "all_rows": len(result.all_records),
            "unique_ots": len(result.unique_records),
        },
        "duplicates_removed_for_compliance": report.duplicates_removed_for_compliance,
        "removed_ot_ids": list(report.removed_ot_ids),
        "internal_clients": {
            "count": report.internal_clients_count,
            "by_code": dict(report.internal_clients_by_code),
        },
    }


def compute_filter_options(result: ReconciliationResult, mapping: ColumnMapping) -> Dict[str, Any]:
    return asdict(filter_options(result.all_records, mapping))
