from __future__ import annotations

import logging
import math
import numbers
import re
import warnings
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from workorders.filters import EngineSettings
from workorders.models import AuditReport, ColumnMapping, ReconciliationResult, WorkOrderRecord


logger = logging.getLogger(__name__)

# Spreadsheet serials count days from 1899-12-30; 25569 is 1970-01-01.
SERIAL_UNIX_OFFSET = 25569
SECONDS_PER_DAY = 86400
SERIAL_EPOCH = date(1899, 12, 30)
UNIX_EPOCH = datetime(1970, 1, 1)

DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})")
YEAR_FIRST_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})")
AMOUNT_STRIP_RE = re.compile(r"[^0-9.\-]")
LEADING_FLOAT_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")
FOUR_DIGIT_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

NOT_MAPPED_TYPE = "N/A"
BLANK_CUSTOM_VALUE = "N/A"

REQUIRED_ROLES = ("ot_number", "client_code", "workshop", "promised_date", "real_delivery_date")

# First matching role wins per header; later headers overwrite earlier ones.
MAPPING_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("ot_number", ("número de ot", "numero de ot")),
    ("folio", ("folio", "nrofolio")),
    ("client_code", ("código de cliente", "cliente/proveedor")),
    ("workshop", ("taller", "nombre_taller")),
    ("promised_date", ("fecha estimada", "prometida")),
    ("real_delivery_date", ("entrega real",)),
    ("billing_date", ("contabilización", "factura", "facturación")),
    ("amount", ("total gs", "total usd", "importe")),
    ("ot_type", ("tipoot", "tipo ot", "tipo de ot")),
)

REASON_EXTERNAL_REPLACED_INTERNAL = "{id} (existing internal replaced by external)"
REASON_INTERNAL_IGNORED = "{id} (internal duplicate ignored)"
REASON_REPLACED_WITH_DELIVERY = "{id} (replaced by record with delivery date)"
REASON_DUPLICATE_IGNORED = "{id} (duplicate ignored)"


class MappingError(ValueError):
    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("Invalid column mapping: " + "; ".join(self.problems))


# ---------------- Cell normalizers ----------------
def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_text(value: object, default: str = "") -> str:
    """Render a cell as trimmed text, ``default`` when blank."""
    if _is_missing(value):
        return default
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        # Integer columns with gaps come back from pandas as floats.
        text = str(int(value))
    elif isinstance(value, datetime):
        text = value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
    elif isinstance(value, date):
        text = value.isoformat()
    else:
        text = str(value)
    text = text.strip()
    return text or default


def _serial_to_datetime(serial: float) -> Optional[datetime]:
    if not math.isfinite(serial):
        return None
    try:
        millis = round((serial - SERIAL_UNIX_OFFSET) * SECONDS_PER_DAY * 1000)
        return UNIX_EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, ValueError):
        return None


def _calendar_date(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def _naive(value: datetime) -> datetime:
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if value.tzinfo is not None:
        value = value.replace(tzinfo=None)
    return value


def _parse_date_text(text: str) -> Optional[datetime]:
    if not any(sep in text for sep in "/-:"):
        try:
            serial = float(text)
        except ValueError:
            serial = None
        if serial is not None:
            return _serial_to_datetime(serial)

    match = DAY_FIRST_RE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _calendar_date(year, month, day)

    match = YEAR_FIRST_RE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _calendar_date(year, month, day)

    # Partial text (time only, month name) is not a date.
    if not FOUR_DIGIT_YEAR_RE.search(text):
        return None

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if _is_missing(parsed):
        return None
    return _naive(parsed)


def parse_sheet_date(value: object) -> Optional[datetime]:
    """Normalize a loosely-typed spreadsheet cell into a naive datetime.

    Accepts date objects, spreadsheet serial numbers and free text (day-first
    ``D/M/YYYY``, ``YYYY-M-D`` or anything pandas can parse). Returns None
    instead of raising on anything it cannot read.
    """
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, np.datetime64):
        return _naive(pd.Timestamp(value))
    if isinstance(value, numbers.Number):
        try:
            return _serial_to_datetime(float(value))
        except (TypeError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        return _parse_date_text(text) if text else None
    return None


def date_to_serial(value: date) -> int:
    """Days since the spreadsheet epoch (1899-12-30)."""
    if isinstance(value, datetime):
        value = value.date()
    return (value - SERIAL_EPOCH).days


def parse_amount(value: object) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Number):
        try:
            out = float(value)
        except (TypeError, ValueError):
            return 0.0
        return out if math.isfinite(out) else 0.0
    if isinstance(value, str):
        match = LEADING_FLOAT_RE.match(AMOUNT_STRIP_RE.sub("", value))
        return float(match.group(0)) if match else 0.0
    return 0.0


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


# ---------------- Ingestion & reconciliation ----------------
def _mapped(row: Mapping[str, object], column: str) -> object:
    return row.get(column) if column else None


def ingest_row(
    row: Mapping[str, object], mapping: ColumnMapping, settings: EngineSettings
) -> Optional[WorkOrderRecord]:
    """Build a record from one raw row; None when the OT number is blank."""
    ot_number = cell_text(_mapped(row, mapping.ot_number))
    if not ot_number:
        return None

    client_code = cell_text(_mapped(row, mapping.client_code))
    return WorkOrderRecord(
        id=ot_number,
        invoice_id=cell_text(row.get(mapping.invoice_number)) if mapping.invoice_number else None,
        folio=cell_text(_mapped(row, mapping.folio)),
        workshop=cell_text(_mapped(row, mapping.workshop), settings.unassigned_workshop),
        estimated_date=parse_sheet_date(_mapped(row, mapping.promised_date)),
        second_estimated_date=parse_sheet_date(_mapped(row, mapping.second_promised_date)),
        real_date=parse_sheet_date(_mapped(row, mapping.real_delivery_date)),
        billing_date=parse_sheet_date(_mapped(row, mapping.billing_date)),
        client_code=client_code,
        is_internal_client=settings.is_internal(client_code),
        amount=parse_amount(row.get(mapping.amount)) if mapping.amount else 0.0,
        ot_type=cell_text(row.get(mapping.ot_type)) if mapping.ot_type else NOT_MAPPED_TYPE,
        custom_values={
            name: cell_text(row.get(name), BLANK_CUSTOM_VALUE) for name in mapping.additional_filters
        },
    )


def resolve_duplicate(existing: WorkOrderRecord, candidate: WorkOrderRecord) -> Tuple[bool, str]:
    """Decide whether ``candidate`` replaces the current survivor for its OT.

    External beats internal; with equal status a record carrying a real
    delivery date beats one without; otherwise the first seen stays.
    Returns ``(replace, removal_reason)``.
    """
    if existing.is_internal_client and not candidate.is_internal_client:
        return True, REASON_EXTERNAL_REPLACED_INTERNAL.format(id=existing.id)
    if not existing.is_internal_client and candidate.is_internal_client:
        return False, REASON_INTERNAL_IGNORED.format(id=candidate.id)
    if existing.real_date is None and candidate.real_date is not None:
        return True, REASON_REPLACED_WITH_DELIVERY.format(id=existing.id)
    return False, REASON_DUPLICATE_IGNORED.format(id=candidate.id)


def reconcile(records: Iterable[WorkOrderRecord]) -> Tuple[Tuple[WorkOrderRecord, ...], List[str]]:
    """Ordered fold of records into one survivor per OT id.

    Returns the survivors (first-seen id order) and one removal reason per
    non-first occurrence.
    """
    survivors: Dict[str, WorkOrderRecord] = {}
    removed: List[str] = []
    for record in records:
        existing = survivors.get(record.id)
        if existing is None:
            survivors[record.id] = record
            continue
        replace, reason = resolve_duplicate(existing, record)
        removed.append(reason)
        if replace:
            survivors[record.id] = record
    return tuple(survivors.values()), removed


def build_audit_report(
    all_records: Sequence[WorkOrderRecord],
    *,
    total_rows: int,
    empty_rows: int,
    removed_ot_ids: Sequence[str],
) -> AuditReport:
    by_code: Dict[str, int] = {}
    for record in all_records:
        if record.is_internal_client:
            by_code[record.client_code] = by_code.get(record.client_code, 0) + 1
    return AuditReport(
        total_rows=total_rows,
        empty_rows=empty_rows,
        duplicates_removed_for_compliance=len(removed_ot_ids),
        removed_ot_ids=tuple(removed_ot_ids),
        internal_clients_count=sum(by_code.values()),
        internal_clients_by_code=by_code,
    )


def process_rows(
    rows: Iterable[Mapping[str, object]],
    mapping: ColumnMapping,
    settings: Optional[EngineSettings] = None,
) -> ReconciliationResult:
    settings = settings or EngineSettings()
    all_records: List[WorkOrderRecord] = []
    total_rows = 0
    empty_rows = 0
    for row in rows:
        total_rows += 1
        record = ingest_row(row, mapping, settings)
        if record is None:
            empty_rows += 1
            continue
        all_records.append(record)

    unique_records, removed = reconcile(all_records)
    report = build_audit_report(all_records, total_rows=total_rows, empty_rows=empty_rows, removed_ot_ids=removed)
    logger.debug(
        "processed %d rows: %d records, %d unique OTs, %d empty, %d duplicates",
        total_rows,
        len(all_records),
        len(unique_records),
        empty_rows,
        len(removed),
    )
    return ReconciliationResult(all_records=tuple(all_records), unique_records=unique_records, report=report)


# ---------------- Column mapping ----------------
def suggest_mapping(headers: Iterable[str]) -> ColumnMapping:
    found: Dict[str, str] = {}
    for header in headers:
        lower = str(header).lower()
        for role, keywords in MAPPING_KEYWORDS:
            if any(k in lower for k in keywords):
                found[role] = str(header)
                break
    return ColumnMapping(
        ot_number=found.get("ot_number", ""),
        client_code=found.get("client_code", ""),
        workshop=found.get("workshop", ""),
        promised_date=found.get("promised_date", ""),
        real_delivery_date=found.get("real_delivery_date", ""),
        folio=found.get("folio", ""),
        billing_date=found.get("billing_date", ""),
        amount=found.get("amount", ""),
        ot_type=found.get("ot_type", ""),
    )


def validate_mapping(mapping: ColumnMapping, headers: Optional[Iterable[str]] = None) -> List[str]:
    problems = [f"missing required column: {role}" for role in REQUIRED_ROLES if not getattr(mapping, role)]
    if headers is None:
        return problems

    known = {str(h).strip() for h in headers}
    columns = [
        mapping.ot_number,
        mapping.client_code,
        mapping.workshop,
        mapping.promised_date,
        mapping.real_delivery_date,
        mapping.folio,
        mapping.second_promised_date,
        mapping.billing_date,
        mapping.amount,
        mapping.ot_type,
        mapping.invoice_number,
        *mapping.additional_filters,
    ]
    for col in columns:
        if col and col not in known:
            problems.append(f"column not found in sheet: {col}")
    return problems


def require_valid_mapping(mapping: ColumnMapping, headers: Optional[Iterable[str]] = None) -> ColumnMapping:
    problems = validate_mapping(mapping, headers)
    if problems:
        raise MappingError(problems)
    return mapping


# ---------------- Workbook adapter ----------------
def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def file_signature(path: Path) -> Tuple[str, float]:
    resolved = Path(path).resolve()
    return str(resolved), resolved.stat().st_mtime


def get_sheet_names(path: Path) -> List[str]:
    with pd.ExcelFile(path) as xls:
        return [str(name) for name in xls.sheet_names]


def get_sheet_headers(path: Path, sheet_name: str) -> List[str]:
    raw = pd.read_excel(path, sheet_name=sheet_name, header=None, nrows=1)
    if raw.empty:
        return []
    return [str(h).strip() for h in raw.iloc[0].tolist() if not _is_missing(h) and str(h).strip()]


def read_sheet_rows(path: Path, sheet_name: str) -> List[Dict[str, object]]:
    df = pd.read_excel(path, sheet_name=sheet_name)
    df.columns = [str(c).strip() for c in df.columns]
    df = drop_duplicate_columns(df)
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


@lru_cache(maxsize=4)
def _load_workbook_result_cached(
    file_sig: Tuple[str, float], sheet_name: str, mapping: ColumnMapping, settings: EngineSettings
) -> ReconciliationResult:
    rows = read_sheet_rows(Path(file_sig[0]), sheet_name)
    logger.info("loaded %d rows from %s [%s]", len(rows), Path(file_sig[0]).name, sheet_name)
    return process_rows(rows, mapping, settings)


def load_workbook_result(
    path: Path,
    sheet_name: str,
    mapping: ColumnMapping,
    settings: Optional[EngineSettings] = None,
) -> ReconciliationResult:
    """Decode, validate and reconcile a sheet; cached per file signature."""
    workbook_path = Path(path)
    if not workbook_path.exists():
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")
    require_valid_mapping(mapping, get_sheet_headers(workbook_path, sheet_name))
    return _load_workbook_result_cached(
        file_signature(workbook_path), sheet_name, mapping, settings or EngineSettings()
    )
