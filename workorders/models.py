"""Domain models for work-order (OT) ingestion and reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


class DeliveryStatus(str, Enum):
    ON_TIME = "on_time"
    LATE = "late"
    PENDING = "pending"


@dataclass(frozen=True)
class ColumnMapping:
    """Source column names for each record role.

    Optional roles are empty strings when not mapped.
    """

    ot_number: str
    client_code: str
    workshop: str
    promised_date: str
    real_delivery_date: str
    folio: str = ""
    second_promised_date: str = ""
    billing_date: str = ""
    amount: str = ""
    ot_type: str = ""
    invoice_number: str = ""
    additional_filters: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Lists coming from JSON must stay hashable for the result cache.
        object.__setattr__(self, "additional_filters", tuple(self.additional_filters or ()))


@dataclass(frozen=True, eq=False)
class WorkOrderRecord:
    """One ingested spreadsheet row, normalized."""

    id: str
    workshop: str
    client_code: str
    is_internal_client: bool
    folio: str = ""
    invoice_id: Optional[str] = None
    estimated_date: Optional[datetime] = None
    second_estimated_date: Optional[datetime] = None
    real_date: Optional[datetime] = None
    billing_date: Optional[datetime] = None
    amount: float = 0.0
    ot_type: str = "N/A"
    custom_values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "custom_values", MappingProxyType(dict(self.custom_values)))


@dataclass(frozen=True)
class AuditReport:
    total_rows: int = 0
    empty_rows: int = 0
    duplicates_removed_for_compliance: int = 0
    removed_ot_ids: Tuple[str, ...] = ()
    internal_clients_count: int = 0
    internal_clients_by_code: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "internal_clients_by_code", MappingProxyType(dict(self.internal_clients_by_code)))


@dataclass(frozen=True)
class ReconciliationResult:
    """Both views over one ingestion pass.

    ``all_records`` keeps every row (billing unit), ``unique_records`` keeps one
    survivor per OT id (compliance unit).
    """

    all_records: Tuple[WorkOrderRecord, ...]
    unique_records: Tuple[WorkOrderRecord, ...]
    report: AuditReport


@dataclass(frozen=True)
class WorkshopStats:
    name: str
    total_ots: int
    on_time: int
    late: int
    pending: int
    compliance_rate: float
    total_amount: float


@dataclass(frozen=True)
class GlobalStats:
    total_ots: int = 0
    total_on_time: int = 0
    total_late: int = 0
    total_pending: int = 0
    average_compliance: float = 0.0
    total_amount: float = 0.0
    workshops: Tuple[WorkshopStats, ...] = ()


@dataclass(frozen=True)
class ClaimsSummary:
    records: Tuple[WorkOrderRecord, ...] = ()
    row_count: int = 0
    unique_ot_count: int = 0
    total_amount: float = 0.0


@dataclass(frozen=True)
class FilterOptions:
    years: List[int] = field(default_factory=list)
    workshops: List[str] = field(default_factory=list)
    custom: Dict[str, List[str]] = field(default_factory=dict)


__all__ = [
    "AuditReport",
    "ClaimsSummary",
    "ColumnMapping",
    "DeliveryStatus",
    "FilterOptions",
    "GlobalStats",
    "ReconciliationResult",
    "WorkOrderRecord",
    "WorkshopStats",
]
