"""
Apply-time value coercion.

Each supplied value is checked against its field's declared type. Values that
do not fit are written unchanged and reported as warnings; nothing is
rejected. Values that fit keep what the caller typed, except for:
- numeric strings that read back identically once converted ("1,200" -> 1200;
  "0012" stays a string);
- boolean words, which become booleans;
- enum values, which take their option's spelling.

Dates are validated only, so "05/01/2024" is written as typed.
"""

from typing import Any, Dict, List, Tuple

from shared.models.mirror_template import FieldDef, SheetDefinition

from mirror.services.field_typing import NUMBER_PATTERN, parse_boolean, parse_date, parse_number


def _coerce_number(field: FieldDef, value: Any) -> Tuple[Any, List[str]]:
    if isinstance(value, bool):
        return value, [f"{field.key}: expected a number, got a boolean"]
    if isinstance(value, (int, float)):
        return value, []
    text = str(value).strip()
    number = parse_number(text, lossless=True)
    if number is not None:
        return number, []
    if NUMBER_PATTERN.match(text):
        # Units ("40 kg") and non-canonical digits ("0012") stay as typed
        return value, []
    return value, [f"{field.key}: '{value}' is not a number"]


def _coerce_bool(field: FieldDef, value: Any) -> Tuple[Any, List[str]]:
    if isinstance(value, bool):
        return value, []
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value), []
    parsed = parse_boolean(str(value))
    if parsed is not None:
        return parsed, []
    return value, [f"{field.key}: '{value}' is not a yes/no value"]


def _coerce_date(field: FieldDef, value: Any) -> Tuple[Any, List[str]]:
    if isinstance(value, str) and parse_date(value) is not None:
        return value, []
    return value, [f"{field.key}: '{value}' is not a recognised date"]


def _coerce_enum(field: FieldDef, value: Any) -> Tuple[Any, List[str]]:
    if not field.options:
        return value, []
    text = str(value).strip().lower()
    for option in field.options:
        if option.strip().lower() == text:
            return option, []
    return value, [f"{field.key}: '{value}' is not one of {', '.join(field.options)}"]


_COERCERS = {
    "number": _coerce_number,
    "bool": _coerce_bool,
    "date": _coerce_date,
    "enum": _coerce_enum,
}


def coerce_value(field: FieldDef, value: Any) -> Tuple[Any, List[str]]:
    if value is None:
        return None, []
    if isinstance(value, str) and not value.strip():
        return value, []
    coercer = _COERCERS.get(field.type)
    if coercer is None:
        return value, []
    return coercer(field, value)


def coerce_values(definition: SheetDefinition, values: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Coerce a value map against the definition's fields.

    Returns the coerced map (known keys only) and the collected warnings.
    """
    fields = {f.key: f for f in definition.fields}
    coerced: Dict[str, Any] = {}
    warnings: List[str] = []

    for key, value in values.items():
        field = fields.get(key)
        if field is None:
            warnings.append(f"{key}: unknown field ignored")
            continue
        coerced[key], problems = coerce_value(field, value)
        warnings.extend(problems)

    return coerced, warnings
