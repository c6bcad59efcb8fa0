from __future__ import annotations

import logging
import math
from dataclasses import asdict
from typing import Literal, Tuple

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    ColumnMappingModel,
    DashboardRequest,
    EngineSettingsModel,
    HeadersRequest,
    MappingValidationRequest,
    MappingValidationResponse,
)
from workorders.data import MappingError, process_rows, require_valid_mapping, suggest_mapping, validate_mapping
from workorders.export import EXPORT_SHEET_TITLES, records_export_frame
from workorders.filters import EngineSettings, FilterState, compliance_view, financial_view, normalize_filters, normalize_settings
from workorders.metrics_audit import compute_audit, compute_filter_options
from workorders.metrics_compliance import compute_compliance
from workorders.metrics_finance import compute_claims, compute_finance, select_claims
from workorders.models import ColumnMapping, ReconciliationResult


app = FastAPI(title="OT Compliance Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _mapping_from_model(model: ColumnMappingModel) -> ColumnMapping:
    raw = model.model_dump()
    raw["additional_filters"] = tuple(raw.get("additional_filters") or ())
    return ColumnMapping(**raw)


def _settings_from_model(model: EngineSettingsModel) -> EngineSettings:
    return normalize_settings(model.model_dump(exclude_none=True))


def _process(req: DashboardRequest) -> Tuple[ColumnMapping, ReconciliationResult, FilterState, EngineSettings]:
    # Row dicts may omit blank cells, so only required roles are checked here.
    mapping = require_valid_mapping(_mapping_from_model(req.mapping))
    settings = _settings_from_model(req.settings)
    result = process_rows(req.rows, mapping, settings)
    filters = normalize_filters(req.filters.model_dump())
    return mapping, result, filters, settings


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(name: str, exc: Exception) -> JSONResponse:
    if isinstance(exc, MappingError):
        logger.warning("%s rejected mapping: %s", name, exc)
        return JSONResponse(status_code=422, content={"error": str(exc), "problems": exc.problems})
    logger.exception("%s failed", name)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.post("/mapping/suggest")
def mapping_suggest(req: HeadersRequest):
    try:
        return _json(asdict(suggest_mapping(req.headers)))
    except Exception as exc:
        return _error("mapping_suggest", exc)


@app.post("/mapping/validate", response_model=MappingValidationResponse)
def mapping_validate(req: MappingValidationRequest):
    problems = validate_mapping(_mapping_from_model(req.mapping), req.headers)
    return MappingValidationResponse(valid=not problems, problems=problems)


@app.post("/meta/filters")
def meta_filters(req: DashboardRequest):
    try:
        mapping, result, _, _ = _process(req)
        return _json(compute_filter_options(result, mapping))
    except Exception as exc:
        return _error("meta_filters", exc)


@app.post("/compliance")
def compliance(req: DashboardRequest):
    try:
        _, result, filters, settings = _process(req)
        return _json(compute_compliance(filters, result, settings))
    except Exception as exc:
        return _error("compliance", exc)


@app.post("/finance")
def finance(req: DashboardRequest):
    try:
        _, result, filters, settings = _process(req)
        return _json(compute_finance(filters, result, settings))
    except Exception as exc:
        return _error("finance", exc)


@app.post("/claims")
def claims(req: DashboardRequest):
    try:
        _, result, filters, settings = _process(req)
        return _json(compute_claims(filters, result, settings))
    except Exception as exc:
        return _error("claims", exc)


@app.post("/audit")
def audit(req: DashboardRequest):
    try:
        _, result, _, _ = _process(req)
        return _json(compute_audit(result))
    except Exception as exc:
        return _error("audit", exc)


@app.post("/export/{view}")
def export_view(view: Literal["compliance", "financial", "claims"], req: DashboardRequest):
    try:
        _, result, filters, settings = _process(req)
        if view == "compliance":
            records = compliance_view(result.unique_records, filters, settings)
        elif view == "financial":
            records = financial_view(result.all_records, filters, settings)
        else:
            records = select_claims(result.all_records, filters, settings).records

        filename = f"{EXPORT_SHEET_TITLES[view]}.csv"
        csv_bytes = records_export_frame(records).to_csv(index=False).encode("utf-8")
        return Response(
            content=csv_bytes,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except Exception as exc:
        return _error("export", exc)
