"""Workbook adapter and column mapping helpers."""

from dataclasses import replace
from datetime import datetime

import pandas as pd
import pytest

from workorders.data import (
    MappingError,
    get_sheet_headers,
    get_sheet_names,
    load_workbook_result,
    read_sheet_rows,
    require_valid_mapping,
    suggest_mapping,
    validate_mapping,
)
from workorders.models import ColumnMapping

from conftest import INTERNAL


HEADERS = [
    "Número de OT",
    "NroFolio",
    "Código de Cliente",
    "Nombre Taller",
    "Fecha Estimada",
    "Fecha Entrega Real",
    "Fecha Contabilización",
    "Total Gs",
    "Tipo OT",
    "Zona",
]


@pytest.fixture
def workbook(tmp_path):
    df = pd.DataFrame(
        [
            [1001, "F1", "C0100200", "Taller Norte", datetime(2024, 3, 1), datetime(2024, 3, 1), datetime(2024, 3, 15), 1500, "Normal", "Norte"],
            [1001, "F2", "C0100200", "Taller Norte", datetime(2024, 3, 1), None, datetime(2024, 3, 20), 500, "Normal", "Norte"],
            [None, None, None, None, None, None, None, None, None, None],
            [1002, "F3", INTERNAL, None, "05/03/2024", "04/03/2024", "2024-03-18", "Gs 2,000", "Normal", None],
        ],
        columns=HEADERS,
    )
    path = tmp_path / "ots.xlsx"
    with pd.ExcelWriter(path) as writer:
        df.to_excel(writer, sheet_name="OTs", index=False)
        pd.DataFrame({"x": [1]}).to_excel(writer, sheet_name="Otra", index=False)
    return path


class TestSuggestMapping:
    def test_spanish_headers(self):
        mapping = suggest_mapping(HEADERS)
        assert mapping.ot_number == "Número de OT"
        assert mapping.folio == "NroFolio"
        assert mapping.client_code == "Código de Cliente"
        assert mapping.workshop == "Nombre Taller"
        assert mapping.promised_date == "Fecha Estimada"
        assert mapping.real_delivery_date == "Fecha Entrega Real"
        assert mapping.billing_date == "Fecha Contabilización"
        assert mapping.amount == "Total Gs"
        assert mapping.ot_type == "Tipo OT"
        assert mapping.additional_filters == ()

    def test_unknown_headers(self):
        mapping = suggest_mapping(["foo", "bar"])
        assert validate_mapping(mapping) == [
            "missing required column: ot_number",
            "missing required column: client_code",
            "missing required column: workshop",
            "missing required column: promised_date",
            "missing required column: real_delivery_date",
        ]


class TestValidateMapping:
    def test_valid(self):
        mapping = suggest_mapping(HEADERS)
        assert validate_mapping(mapping, HEADERS) == []
        assert require_valid_mapping(mapping, HEADERS) is mapping

    def test_unknown_columns(self):
        mapping = ColumnMapping(
            ot_number="Número de OT",
            client_code="Código de Cliente",
            workshop="Nombre Taller",
            promised_date="Fecha Estimada",
            real_delivery_date="Fecha Entrega Real",
            additional_filters=("Región",),
        )
        assert validate_mapping(mapping, HEADERS) == ["column not found in sheet: Región"]
        with pytest.raises(MappingError) as exc:
            require_valid_mapping(mapping, HEADERS)
        assert exc.value.problems == ["column not found in sheet: Región"]


class TestWorkbook:
    def test_sheet_names_and_headers(self, workbook):
        assert get_sheet_names(workbook) == ["OTs", "Otra"]
        assert get_sheet_headers(workbook, "OTs") == HEADERS

    def test_rows_use_none_for_blank_cells(self, workbook):
        rows = read_sheet_rows(workbook, "OTs")
        assert len(rows) == 4
        assert rows[2]["Número de OT"] is None
        assert rows[1]["Fecha Entrega Real"] is None

    def test_load_result(self, workbook):
        mapping = replace(suggest_mapping(HEADERS), additional_filters=("Zona",))
        result = load_workbook_result(workbook, "OTs", mapping)

        assert result.report.total_rows == 4
        assert result.report.empty_rows == 1
        assert [r.id for r in result.unique_records] == ["1001", "1002"]
        first = result.unique_records[0]
        assert first.folio == "F1"
        assert first.real_date == datetime(2024, 3, 1)
        assert first.amount == 1500.0

        internal = result.unique_records[1]
        assert internal.is_internal_client
        assert internal.workshop == "Sin Taller Asignado"
        assert internal.estimated_date == datetime(2024, 3, 5)
        assert internal.billing_date == datetime(2024, 3, 18)
        assert internal.amount == 2000.0
        assert internal.custom_values["Zona"] == "N/A"

    def test_result_is_cached(self, workbook):
        mapping = suggest_mapping(HEADERS)
        assert load_workbook_result(workbook, "OTs", mapping) is load_workbook_result(workbook, "OTs", mapping)

    def test_cached_result_is_read_only(self, workbook):
        mapping = suggest_mapping(HEADERS)
        first = load_workbook_result(workbook, "OTs", mapping)
        with pytest.raises(TypeError):
            first.report.internal_clients_by_code[INTERNAL] = 999
        with pytest.raises(TypeError):
            first.unique_records[0].custom_values["Zona"] = "Sur"

        second = load_workbook_result(workbook, "OTs", mapping)
        assert dict(second.report.internal_clients_by_code) == {INTERNAL: 1}
        assert isinstance(second.all_records, tuple)

    def test_invalid_mapping_rejected(self, workbook):
        mapping = ColumnMapping(
            ot_number="OT",
            client_code="Código de Cliente",
            workshop="Nombre Taller",
            promised_date="Fecha Estimada",
            real_delivery_date="Fecha Entrega Real",
        )
        with pytest.raises(MappingError):
            load_workbook_result(workbook, "OTs", mapping)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_workbook_result(tmp_path / "missing.xlsx", "OTs", suggest_mapping(HEADERS))
