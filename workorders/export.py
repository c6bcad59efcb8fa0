from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from workorders.models import WorkOrderRecord
from workorders.status import classify, status_label


EXPORT_COLUMNS = [
    "Nro OT",
    "Taller",
    "Cliente",
    "Tipo OT",
    "Folio",
    "Factura",
    "Fecha Estimada",
    "Fecha Reprogramada",
    "Fecha Real",
    "Fecha Facturación",
    "Importe",
    "Estado",
]

EXPORT_SHEET_TITLES = {
    "compliance": "Reporte_Logistica",
    "financial": "Reporte_Financiero",
    "claims": "Reporte_Reclamos",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.date().isoformat() if value is not None else None


def record_to_dict(record: WorkOrderRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "invoice_id": record.invoice_id,
        "folio": record.folio,
        "workshop": record.workshop,
        "client_code": record.client_code,
        "is_internal_client": record.is_internal_client,
        "estimated_date": _iso(record.estimated_date),
        "second_estimated_date": _iso(record.second_estimated_date),
        "real_date": _iso(record.real_date),
        "billing_date": _iso(record.billing_date),
        "amount": record.amount,
        "ot_type": record.ot_type,
        "status": classify(record).value,
        "custom_values": dict(record.custom_values),
    }


def records_export_frame(records: Iterable[WorkOrderRecord]) -> pd.DataFrame:
    """Flat table of records with labelled columns, custom fields appended."""
    rows: List[Dict[str, Any]] = []
    custom_cols: List[str] = []
    for r in records:
        row = {
            "Nro OT": r.id,
            "Taller": r.workshop,
            "Cliente": r.client_code,
            "Tipo OT": r.ot_type or "",
            "Folio": r.folio or "",
            "Factura": r.invoice_id or "",
            "Fecha Estimada": _iso(r.estimated_date) or "",
            "Fecha Reprogramada": _iso(r.second_estimated_date) or "",
            "Fecha Real": _iso(r.real_date) or "",
            "Fecha Facturación": _iso(r.billing_date) or "",
            "Importe": r.amount,
            "Estado": status_label(r),
        }
        for name, value in r.custom_values.items():
            if name not in custom_cols:
                custom_cols.append(name)
            # Custom fields never overwrite the fixed columns.
            row.setdefault(name, value)
        rows.append(row)
    columns = EXPORT_COLUMNS + [c for c in custom_cols if c not in EXPORT_COLUMNS]
    return pd.DataFrame(rows, columns=columns)
