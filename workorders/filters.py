from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from workorders.models import ColumnMapping, FilterOptions, WorkOrderRecord


INTERNAL_CLIENT_CODES: FrozenSet[str] = frozenset({"C0008157", "C0001114", "C0001140"})
CLAIMS_CLIENT_CODE = "C0008157"
CLAIM_KEYWORD = "reclamo"
UNASSIGNED_WORKSHOP = "Sin Taller Asignado"

ALL_TOKENS = {"", "all", "todos"}


@dataclass(frozen=True)
class EngineSettings:
    internal_client_codes: FrozenSet[str] = INTERNAL_CLIENT_CODES
    claims_client_code: str = CLAIMS_CLIENT_CODE
    claim_keyword: str = CLAIM_KEYWORD
    unassigned_workshop: str = UNASSIGNED_WORKSHOP

    def is_internal(self, client_code: str) -> bool:
        return client_code in self.internal_client_codes


@dataclass(frozen=True)
class FilterState:
    year: Optional[int] = None
    month: Optional[int] = None
    workshop: Optional[str] = None
    custom_filters: Dict[str, str] = field(default_factory=dict)


def _is_all(value: object) -> bool:
    return value is None or str(value).strip().lower() in ALL_TOKENS


def _as_int(value: object) -> Optional[int]:
    if _is_all(value):
        return None
    try:
        number = float(str(value).strip())
    except Exception:
        return None
    return int(number) if number.is_integer() else None


def normalize_filters(raw: Optional[Mapping[str, object]]) -> FilterState:
    raw = raw or {}

    year = _as_int(raw.get("year"))
    month = _as_int(raw.get("month"))
    if month is not None and not 1 <= month <= 12:
        month = None

    workshop = raw.get("workshop")
    workshop = None if _is_all(workshop) else str(workshop)

    custom_filters: Dict[str, str] = {}
    for name, value in (raw.get("custom_filters") or {}).items():
        if _is_all(value):
            continue
        custom_filters[str(name)] = str(value)

    return FilterState(year=year, month=month, workshop=workshop, custom_filters=custom_filters)


def normalize_settings(raw: Optional[Mapping[str, object]]) -> EngineSettings:
    raw = raw or {}
    codes = raw.get("internal_client_codes")
    internal = (
        frozenset(str(c).strip() for c in codes if c is not None and str(c).strip())
        if codes is not None
        else INTERNAL_CLIENT_CODES
    )
    keyword = str(raw.get("claim_keyword") or CLAIM_KEYWORD).strip().lower()
    return EngineSettings(
        internal_client_codes=internal,
        claims_client_code=str(raw.get("claims_client_code") or CLAIMS_CLIENT_CODE).strip(),
        claim_keyword=keyword or CLAIM_KEYWORD,
        unassigned_workshop=str(raw.get("unassigned_workshop") or UNASSIGNED_WORKSHOP).strip(),
    )


def matches_filters(record: WorkOrderRecord, state: FilterState) -> bool:
    if state.year is not None:
        billed = record.billing_date
        if billed is None or billed.year != state.year:
            return False
        # Month only narrows a selected year.
        if state.month is not None and billed.month != state.month:
            return False

    if state.workshop is not None and record.workshop != state.workshop:
        return False

    for name, value in state.custom_filters.items():
        if record.custom_values.get(name) != value:
            return False
    return True


def filter_records(records: Iterable[WorkOrderRecord], state: FilterState) -> List[WorkOrderRecord]:
    return [r for r in records if matches_filters(r, state)]


def exclude_internal(records: Iterable[WorkOrderRecord], settings: EngineSettings) -> List[WorkOrderRecord]:
    return [r for r in records if not settings.is_internal(r.client_code)]


def compliance_view(
    unique_records: Iterable[WorkOrderRecord], state: FilterState, settings: EngineSettings
) -> List[WorkOrderRecord]:
    return filter_records(exclude_internal(unique_records, settings), state)


def financial_view(
    all_records: Iterable[WorkOrderRecord], state: FilterState, settings: EngineSettings
) -> List[WorkOrderRecord]:
    return filter_records(exclude_internal(all_records, settings), state)


def filter_options(records: Iterable[WorkOrderRecord], mapping: ColumnMapping) -> FilterOptions:
    years: Set[int] = set()
    workshops: Set[str] = set()
    custom: Dict[str, Set[str]] = {name: set() for name in mapping.additional_filters}

    for r in records:
        if r.billing_date is not None:
            years.add(r.billing_date.year)
        workshops.add(r.workshop)
        for name in mapping.additional_filters:
            value = r.custom_values.get(name)
            if value:
                custom[name].add(value)

    return FilterOptions(
        years=sorted(years, reverse=True),
        workshops=sorted(workshops),
        custom={name: sorted(values) for name, values in custom.items()},
    )
