from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import pytest

from workorders.filters import EngineSettings
from workorders.models import ColumnMapping, WorkOrderRecord


INTERNAL = "C0001114"
CLAIMS_CLIENT = "C0008157"
EXTERNAL = "C0100200"


@pytest.fixture
def mapping() -> ColumnMapping:
    return ColumnMapping(
        ot_number="Número de OT",
        client_code="Código de Cliente",
        workshop="Nombre Taller",
        promised_date="Fecha Estimada",
        real_delivery_date="Fecha Entrega Real",
        folio="NroFolio",
        second_promised_date="Fecha Reprogramada",
        billing_date="Fecha Contabilización",
        amount="Total Gs",
        ot_type="Tipo OT",
        invoice_number="Factura",
        additional_filters=("Zona",),
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


def make_row(
    ot: Any,
    *,
    client: str = EXTERNAL,
    workshop: Any = "Taller Central",
    promised: Any = "01/03/2024",
    real: Any = None,
    billing: Any = "15/03/2024",
    amount: Any = 1000,
    ot_type: Any = "Normal",
    folio: Any = "",
    invoice: Any = None,
    zona: Any = "Norte",
    rescheduled: Any = None,
) -> Dict[str, Any]:
    return {
        "Número de OT": ot,
        "Código de Cliente": client,
        "Nombre Taller": workshop,
        "Fecha Estimada": promised,
        "Fecha Reprogramada": rescheduled,
        "Fecha Entrega Real": real,
        "Fecha Contabilización": billing,
        "Total Gs": amount,
        "Tipo OT": ot_type,
        "NroFolio": folio,
        "Factura": invoice,
        "Zona": zona,
    }


def make_record(
    ot: str = "OT-1",
    *,
    client: str = EXTERNAL,
    workshop: str = "Taller Central",
    estimated: Optional[datetime] = None,
    rescheduled: Optional[datetime] = None,
    real: Optional[datetime] = None,
    billing: Optional[datetime] = None,
    amount: float = 0.0,
    ot_type: str = "Normal",
    custom: Optional[Dict[str, str]] = None,
    settings: Optional[EngineSettings] = None,
) -> WorkOrderRecord:
    settings = settings or EngineSettings()
    return WorkOrderRecord(
        id=ot,
        workshop=workshop,
        client_code=client,
        is_internal_client=settings.is_internal(client),
        estimated_date=estimated,
        second_estimated_date=rescheduled,
        real_date=real,
        billing_date=billing,
        amount=amount,
        ot_type=ot_type,
        custom_values=custom or {},
    )
