"""
Tests unitarios para la matriz de compatibilidad de tipos Airtable <-> Postgres.
"""
from __future__ import annotations

from datetime import datetime

import pytest

from app.infrastructure.external.airtable_sync.type_helpers import (
    check_value,
    get_type_helper,
    has_compatibility_error,
    resolve_lookup,
    to_cell_value,
)
from app.infrastructure.external.airtable_sync.types import ColumnSchema, FieldMetadata
from app.shared.exceptions.domain import SyncConfigurationException, UnsupportedFieldTypeException


def _field(field_type: str, **options) -> FieldMetadata:
    return FieldMetadata(id="fld1", name="Campo", type=field_type, options=options, path_name="Tabla.Campo")


def _column(type_class: str, params=None, optional: bool = True) -> ColumnSchema:
    return ColumnSchema(name="col", type_class=type_class, params=params, optional=optional)


class TestHasCompatibilityError:
    @pytest.mark.parametrize(
        "field_type,type_class",
        [
            ("number", "int"),
            ("number", "float"),
            ("autoNumber", "int"),
            ("checkbox", "bool"),
            ("dateTime", "date"),
            ("lastModifiedTime", "date"),
            ("email", "string"),
            ("multipleRecordLinks", "string"),
            ("multipleAttachments", "json"),
        ],
    )
    def test_compatible(self, field_type: str, type_class: str) -> None:
        assert has_compatibility_error(_field(field_type), _column(type_class)) is False

    @pytest.mark.parametrize(
        "field_type,type_class",
        [("number", "string"), ("autoNumber", "float"), ("singleLineText", "int"), ("date", "string")],
    )
    def test_incompatible(self, field_type: str, type_class: str) -> None:
        error = has_compatibility_error(_field(field_type), _column(type_class))

        assert isinstance(error, str)
        assert field_type in error

    def test_single_select_into_string_is_allowed(self) -> None:
        field = _field("singleSelect", choices=[{"name": "A"}, {"name": "B"}])

        assert has_compatibility_error(field, _column("string")) is False

    def test_single_select_choices_must_exist_in_enum(self) -> None:
        field = _field("singleSelect", choices=[{"name": "A"}, {"name": "B"}])

        assert has_compatibility_error(field, _column("enum", params=("A", "B", "C"))) is False
        assert '"B"' in has_compatibility_error(field, _column("enum", params=("A",)))

    def test_multiple_selects_into_restricted_array(self) -> None:
        field = _field("multipleSelects", choices=[{"name": "x"}, {"name": "y"}])

        assert has_compatibility_error(field, _column("array")) is False
        assert '"y"' in has_compatibility_error(field, _column("array", params=("x",)))

    def test_lookup_uses_real_type(self) -> None:
        field = _field("multipleLookupValues", result={"type": "number", "options": {"precision": 1}})

        assert has_compatibility_error(field, _column("float")) is False
        assert isinstance(has_compatibility_error(field, _column("string")), str)

    def test_unknown_type_is_always_incompatible(self) -> None:
        assert "barcode" in has_compatibility_error(_field("barcode"), _column("string"))


class TestLookupAndHelpers:
    def test_resolve_lookup_without_result_fails(self) -> None:
        with pytest.raises(SyncConfigurationException):
            resolve_lookup(_field("multipleLookupValues"))

    def test_resolve_lookup_keeps_other_types(self) -> None:
        field = _field("email")

        assert resolve_lookup(field) is field

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnsupportedFieldTypeException):
            get_type_helper(_field("aiText"))


class TestToCellValue:
    def test_single_select_object_to_name(self) -> None:
        assert to_cell_value(_field("singleSelect"), {"id": "sel1", "name": "Fondo", "color": "red"}) == "Fondo"

    def test_multiple_selects(self) -> None:
        assert to_cell_value(_field("multipleSelects"), [{"name": "a"}, {"name": "b"}]) == ["a", "b"]

    def test_links_to_record_ids(self) -> None:
        assert to_cell_value(_field("multipleRecordLinks"), [{"id": "rec1", "name": "X"}]) == ["rec1"]

    def test_checkbox_null_is_false(self) -> None:
        assert to_cell_value(_field("checkbox"), None) is False

    def test_plain_values_are_kept(self) -> None:
        assert to_cell_value(_field("number"), 4.5) == 4.5


class TestCheckValue:
    def test_required_value(self) -> None:
        assert check_value(None, _column("string", optional=True)) is False
        assert check_value(None, _column("string", optional=False))

    def test_int_accepts_integral_float(self) -> None:
        assert check_value(3.0, _column("int")) is False
        assert check_value(3.5, _column("int"))
        assert check_value(True, _column("int"))

    def test_enum_and_array_params(self) -> None:
        assert check_value("A", _column("enum", params=("A",))) is False
        assert check_value("Z", _column("enum", params=("A",)))
        assert check_value(["A"], _column("array", params=("A",))) is False
        assert check_value(["Z"], _column("array", params=("A",)))

    def test_date(self) -> None:
        assert check_value(datetime(2025, 1, 1), _column("date")) is False
        assert check_value(12, _column("date"))
