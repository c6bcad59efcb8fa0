from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ColumnMappingModel(BaseModel):
    ot_number: str = ""
    client_code: str = ""
    workshop: str = ""
    promised_date: str = ""
    real_delivery_date: str = ""
    folio: str = ""
    second_promised_date: str = ""
    billing_date: str = ""
    amount: str = ""
    ot_type: str = ""
    invoice_number: str = ""
    additional_filters: List[str] = Field(default_factory=list)


class FilterStateModel(BaseModel):
    year: Optional[Union[int, str]] = None
    month: Optional[Union[int, str]] = None
    workshop: Optional[str] = None
    custom_filters: Dict[str, str] = Field(default_factory=dict)


class EngineSettingsModel(BaseModel):
    internal_client_codes: Optional[List[str]] = None
    claims_client_code: Optional[str] = None
    claim_keyword: Optional[str] = None
    unassigned_workshop: Optional[str] = None


class DashboardRequest(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    mapping: ColumnMappingModel
    filters: FilterStateModel = Field(default_factory=FilterStateModel)
    settings: EngineSettingsModel = Field(default_factory=EngineSettingsModel)


class HeadersRequest(BaseModel):
    headers: List[str]


class MappingValidationRequest(BaseModel):
    mapping: ColumnMappingModel
    headers: Optional[List[str]] = None


class MappingValidationResponse(BaseModel):
    valid: bool
    problems: List[str]
