"""
Matriz de compatibilidad entre tipos de field Airtable y clases de columna Postgres.

Cada tipo Airtable declara:
- check: predicado de compatibilidad con la columna (False o mensaje de error)
- to_v1: conversión opcional del valor de webhook (v2) al formato REST (v1)

Referencia: https://airtable.com/developers/web/api/field-model
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

from app.shared.exceptions.domain import (
    SyncConfigurationException,
    UnsupportedFieldTypeException,
)

from .types import ColumnSchema, FieldMetadata


CompatibilityResult = Union[bool, str]


@dataclass(frozen=True)
class TypeHelper:
    check: Callable[[FieldMetadata, ColumnSchema], CompatibilityResult]
    to_v1: Optional[Callable[[Any], Any]] = None


def _choice_names(field: FieldMetadata) -> list[str]:
    return [c.get("name") for c in (field.options.get("choices") or [])]


def _check_single_select(field: FieldMetadata, column: ColumnSchema) -> CompatibilityResult:
    # Opciones restringidas en Airtable, libres en la base
    if column.type_class == "string":
        return False
    if column.type_class != "enum":
        return True
    if column.params is None:
        return "No se definieron valores posibles para la columna de la base."
    for choice in _choice_names(field):
        if choice not in column.params:
            return (
                f'El valor "{choice}" es posible en Airtable, pero no en la base. '
                f"Valores posibles en la base: {', '.join(column.params)}"
            )
    return False


def _check_multiple_selects(field: FieldMetadata, column: ColumnSchema) -> CompatibilityResult:
    if column.type_class != "array":
        return True
    if column.params is None:
        return False
    for choice in _choice_names(field):
        if choice not in column.params:
            return (
                f'El valor "{choice}" es posible en Airtable, pero no en la base. '
                f"Valores posibles en la base: {', '.join(column.params)}"
            )
    return False


def _expects(*type_classes: str) -> Callable[[FieldMetadata, ColumnSchema], CompatibilityResult]:
    def check(field: FieldMetadata, column: ColumnSchema) -> CompatibilityResult:
        return column.type_class not in type_classes

    return check


def _select_to_v1(value: Any) -> Any:
    return value.get("name") if isinstance(value, dict) else value


def _multi_select_to_v1(value: Any) -> Any:
    if value is None:
        return None
    return [_select_to_v1(v) for v in value]


def _links_to_v1(value: Any) -> Any:
    if value is None:
        return None
    return [v.get("id") if isinstance(v, dict) else v for v in value]


_INT = _expects("int")
_NUMBER = _expects("int", "float")
_DATE = _expects("date")
_STRING = _expects("string")


TYPE_HELPERS: dict[str, TypeHelper] = {
    # Choices (null cuando están vacíos)
    "singleSelect": TypeHelper(check=_check_single_select, to_v1=_select_to_v1),
    "multipleSelects": TypeHelper(check=_check_multiple_selects, to_v1=_multi_select_to_v1),
    # Enteros
    "autoNumber": TypeHelper(check=_INT),
    "count": TypeHelper(check=_INT),
    "duration": TypeHelper(check=_INT),
    # Enteros o flotantes
    "currency": TypeHelper(check=_NUMBER),
    "number": TypeHelper(check=_NUMBER),
    "percent": TypeHelper(check=_NUMBER),
    "rating": TypeHelper(check=_NUMBER),
    # Booleanos
    "checkbox": TypeHelper(check=_expects("bool", "int"), to_v1=lambda v: v is True),
    # Fechas
    "createdTime": TypeHelper(check=_DATE),
    "date": TypeHelper(check=_DATE),
    "dateTime": TypeHelper(check=_DATE),
    "lastModifiedTime": TypeHelper(check=_DATE),
    # Strings
    "email": TypeHelper(check=_STRING),
    "url": TypeHelper(check=_STRING),
    "formula": TypeHelper(check=_STRING),
    "multilineText": TypeHelper(check=_STRING),
    "phoneNumber": TypeHelper(check=_STRING),
    "richText": TypeHelper(check=_STRING),
    "rollup": TypeHelper(check=_STRING),
    "singleLineText": TypeHelper(check=_STRING),
    # Adjuntos: tratamiento especial en el mapper del provider
    "multipleAttachments": TypeHelper(check=lambda field, column: False),
    # Solo se compara cuando la columna es un ToOne; un ToMany no tiene columna
    "multipleRecordLinks": TypeHelper(check=_STRING, to_v1=_links_to_v1),
    "multipleLookupValues": TypeHelper(
        check=lambda field, column: "Los lookups deben resolverse a su tipo real antes de compararse."
    ),
}


def get_type_helper(field: FieldMetadata) -> TypeHelper:
    helper = TYPE_HELPERS.get(field.type)
    if helper is None:
        raise UnsupportedFieldTypeException(field.path_name, field.type)
    return helper


def resolve_lookup(field: FieldMetadata) -> FieldMetadata:
    """
    Un lookup es un proxy transparente: retorna el field con el tipo/opciones
    del valor real. Los demás tipos se retornan sin cambios.
    """
    if field.type != "multipleLookupValues":
        return field

    real = (field.options or {}).get("result")
    if not real or not real.get("type"):
        raise SyncConfigurationException(
            f"No se pudo obtener el tipo real del lookup {field.path_name}",
            details={"field": field.path_name, "options": field.options},
        )
    return replace(field, type=real["type"], options=real.get("options") or {})


def has_compatibility_error(field: FieldMetadata, column: ColumnSchema) -> Union[bool, str]:
    """
    Retorna False si el field Airtable puede persistirse en la columna,
    o un mensaje describiendo la incompatibilidad.
    Tipo desconocido = siempre incompatible.
    """
    try:
        resolved = resolve_lookup(field)
    except SyncConfigurationException as e:
        return e.message

    helper = TYPE_HELPERS.get(resolved.type)
    if helper is None:
        return f"Tipo Airtable no soportado: {resolved.type}"

    result = helper.check(resolved, column)
    if result is True:
        return (
            f"El tipo Airtable {resolved.type} no es compatible con "
            f"la clase de columna {column.type_class} ({column.raw_type or column.type_class})"
        )
    return result


def to_cell_value(field: FieldMetadata, raw: Any) -> Any:
    """
    Convierte un valor de celda de webhook (v2) al formato REST (v1).
    Un tipo desconocido en vivo falla ruidosamente (deriva de esquema).
    """
    helper = get_type_helper(field)
    if helper.to_v1 is None:
        return raw
    return helper.to_v1(raw)


def check_value(value: Any, column: ColumnSchema) -> Union[bool, str]:
    """
    Valida la forma de un valor contra la columna destino.
    Retorna False si es válido o un mensaje de error.
    """
    if value is None:
        return False if column.optional else f"{column.name}: valor obligatorio"

    type_class = column.type_class
    if type_class == "string":
        ok = isinstance(value, str)
    elif type_class == "int":
        ok = isinstance(value, int) and not isinstance(value, bool)
        if not ok and isinstance(value, float) and value.is_integer():
            ok = True
    elif type_class == "float":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif type_class == "bool":
        ok = isinstance(value, (bool, int))
    elif type_class == "date":
        ok = isinstance(value, (str, datetime, date))
    elif type_class == "enum":
        ok = isinstance(value, str) and (column.params is None or value in column.params)
    elif type_class == "array":
        ok = isinstance(value, (list, tuple))
        if ok and column.params is not None:
            ok = all(v in column.params for v in value)
    else:
        ok = True

    if ok:
        return False
    return f"{column.name}: se esperaba {type_class}, se recibió {type(value).__name__} ({value!r})"
