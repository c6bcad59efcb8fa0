from __future__ import annotations

from datetime import datetime
from typing import Optional

from workorders.models import DeliveryStatus, WorkOrderRecord


STATUS_LABELS = {
    DeliveryStatus.ON_TIME: "A Tiempo",
    DeliveryStatus.LATE: "Retraso",
    DeliveryStatus.PENDING: "Pendiente",
}
NO_DATE_LABEL = "Sin Fecha"


def target_date(record: WorkOrderRecord) -> Optional[datetime]:
    """Reschedule date when present, else the original promised date."""
    return record.second_estimated_date or record.estimated_date


def classify(record: WorkOrderRecord) -> DeliveryStatus:
    target = target_date(record)
    if target is None or record.real_date is None:
        return DeliveryStatus.PENDING
    # Day granularity; time of day is not meaningful in the source sheets.
    if record.real_date.date() <= target.date():
        return DeliveryStatus.ON_TIME
    return DeliveryStatus.LATE


def status_label(record: WorkOrderRecord) -> str:
    if target_date(record) is None and record.real_date is None:
        return NO_DATE_LABEL
    return STATUS_LABELS[classify(record)]
