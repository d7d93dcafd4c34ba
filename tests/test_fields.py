# tests/test_fields.py
"""
Pruebas del modelo de campos: el tipo de `value` lo fija `kind`.
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from contractflow.errors import ValidationError
from contractflow.fields import (
    CheckboxField,
    DateField,
    FieldKind,
    SignatureField,
    TextField,
    blank_copy,
    dump_fields,
    empty_value,
    load_fields,
    parse_fields,
)


def test_parse_dispatches_on_kind():
    fields = parse_fields([
        {"id": "a", "kind": "text", "label": "Name"},
        {"id": "b", "kind": "date", "label": "Start"},
        {"id": "c", "kind": "checkbox", "label": "Ack"},
        {"id": "d", "kind": "signature", "label": "Sign here"},
    ])
    assert [type(f) for f in fields] == [TextField, DateField, CheckboxField, SignatureField]
    assert [f.value for f in fields] == ["", "", False, ""]


def test_empty_values_per_kind():
    assert empty_value(FieldKind.text) == ""
    assert empty_value("date") == ""
    assert empty_value("signature") == ""
    assert empty_value(FieldKind.checkbox) is False


def test_unknown_kind_is_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_fields([{"id": "a", "kind": "radio", "label": "Pick"}])
    assert exc.value.code == "ValidationFailed"
    assert exc.value.details and exc.value.details[0]["path"].startswith("fields.0")


def test_blank_label_is_rejected():
    with pytest.raises(ValidationError):
        parse_fields([{"id": "a", "kind": "text", "label": "   "}])


def test_duplicate_ids_are_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_fields([
            {"id": "a", "kind": "text", "label": "One"},
            {"id": "a", "kind": "date", "label": "Two"},
        ])
    assert "duplicate" in exc.value.details[0]["msg"]


@pytest.mark.parametrize("value", ["2026-02-28", ""])
def test_date_accepts_iso_calendar_date_or_empty(value):
    field = DateField(id="d", label="Start", value=value)
    assert field.value == value


@pytest.mark.parametrize("value", ["28/02/2026", "2026-02-30", "2026-02-28T10:00:00", "tomorrow"])
def test_date_rejects_other_strings(value):
    with pytest.raises(ValidationError):
        parse_fields([{"id": "d", "kind": "date", "label": "Start", "value": value}])


def test_checkbox_does_not_coerce_truthy_strings():
    with pytest.raises(ValidationError):
        parse_fields([{"id": "c", "kind": "checkbox", "label": "Ack", "value": "true"}])
    with pytest.raises(ValidationError):
        parse_fields([{"id": "c", "kind": "checkbox", "label": "Ack", "value": 1}])


def test_text_rejects_non_string_value():
    with pytest.raises(ValidationError):
        parse_fields([{"id": "t", "kind": "text", "label": "Name", "value": 42}])


def test_signature_signed_flag():
    assert SignatureField(id="s", label="Sig", value="Ada Lovelace").signed is True
    assert SignatureField(id="s", label="Sig").signed is False


def test_assignment_is_validated():
    """Cada escritura se valida, no solo la construcción."""
    box = CheckboxField(id="c", label="Ack")
    box.value = True
    with pytest.raises(PydanticValidationError):
        box.value = "yes"
    date_field = DateField(id="d", label="Start")
    with pytest.raises(PydanticValidationError):
        date_field.value = "not-a-date"


def test_blank_copy_resets_values_and_is_independent():
    original = parse_fields([
        {"id": "t", "kind": "text", "label": "Name", "value": "ACME"},
        {"id": "c", "kind": "checkbox", "label": "Ack", "value": True},
    ])
    copied = blank_copy(original)
    assert [f.value for f in copied] == ["", False]
    assert [f.value for f in original] == ["ACME", True]
    copied[0].value = "changed"
    assert original[0].value == "ACME"


def test_blank_copy_can_carry_over_defaults():
    original = parse_fields([{"id": "t", "kind": "text", "label": "Name", "value": "ACME"}])
    assert blank_copy(original, carry_over_defaults=True)[0].value == "ACME"


def test_dump_and_load_keep_kind_and_position():
    fields = parse_fields([
        {"id": "t", "kind": "text", "label": "Name", "position": {"x": 10, "y": 20}},
    ])
    payload = dump_fields(fields)
    stored = json.loads(payload)
    assert stored[0]["kind"] == "text"
    assert stored[0]["position"] == {"x": 10.0, "y": 20.0}
    assert load_fields(payload) == fields
