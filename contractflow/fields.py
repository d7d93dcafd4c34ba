"""
Field Model
Typed field definitions shared by blueprints and contracts.

A field is a tagged union over its `kind`: the `value` type is fixed by the
kind and checked both when the field is built and on every assignment.
"""

import json
import re
from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


class FieldKind(str, Enum):
    text = "text"
    date = "date"
    signature = "signature"
    checkbox = "checkbox"


EMPTY_VALUES: Dict[FieldKind, Any] = {
    FieldKind.text: "",
    FieldKind.date: "",
    FieldKind.signature: "",
    FieldKind.checkbox: False,
}

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Position(BaseModel):
    """Layout hint for the editor canvas"""
    x: float = 0
    y: float = 0


class _BaseField(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: StrictStr
    label: StrictStr
    position: Position = Field(default_factory=Position)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("field id must not be blank")
        return v

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("field label must not be blank")
        return v


class TextField(_BaseField):
    kind: Literal["text"] = "text"
    value: StrictStr = ""


class DateField(_BaseField):
    kind: Literal["date"] = "date"
    value: StrictStr = ""

    @field_validator("value")
    @classmethod
    def _iso_date_or_empty(cls, v: str) -> str:
        if v == "":
            return v
        if not ISO_DATE_RE.match(v):
            raise ValueError("date must be an ISO-8601 calendar date (YYYY-MM-DD)")
        try:
            date.fromisoformat(v)
        except ValueError as exc:
            raise ValueError(f"invalid calendar date: {v}") from exc
        return v


class SignatureField(_BaseField):
    kind: Literal["signature"] = "signature"
    value: StrictStr = ""

    @property
    def signed(self) -> bool:
        """A non-empty value is the signer's typed name"""
        return bool(self.value.strip())


class CheckboxField(_BaseField):
    kind: Literal["checkbox"] = "checkbox"
    value: StrictBool = False


FieldDefinition = Annotated[
    Union[TextField, DateField, SignatureField, CheckboxField],
    Field(discriminator="kind"),
]

_FIELD_LIST = TypeAdapter(List[FieldDefinition])


def empty_value(kind: Union[FieldKind, str]) -> Any:
    """Empty default for a field kind ("" for strings, False for checkbox)"""
    return EMPTY_VALUES[FieldKind(kind)]


def _error_details(exc: PydanticValidationError, prefix: str = "fields") -> List[Dict[str, Any]]:
    details = []
    for err in exc.errors():
        path = ".".join(str(p) for p in (prefix, *err["loc"]))
        details.append({"path": path, "msg": err["msg"]})
    return details


def parse_fields(raw: Iterable[Any]) -> List[FieldDefinition]:
    """
    Validate a raw field list (dicts or field models) into typed fields.

    Raises:
        ValidationError: unknown kind, missing label, value of the wrong
            type for its kind, or a field id used twice.
    """
    try:
        fields = _FIELD_LIST.validate_python(list(raw))
    except PydanticValidationError as exc:
        raise ValidationError("Invalid field definitions", _error_details(exc)) from exc

    seen = set()
    for index, f in enumerate(fields):
        if f.id in seen:
            raise ValidationError(
                "Invalid field definitions",
                [{"path": f"fields.{index}.id", "msg": f"duplicate field id '{f.id}'"}],
            )
        seen.add(f.id)
    return fields


def blank_copy(fields: Iterable[FieldDefinition], carry_over_defaults: bool = False) -> List[FieldDefinition]:
    """
    Independent copy of `fields` for a new contract.
    Values are reset to the kind's empty default unless `carry_over_defaults`.
    """
    copied = []
    for f in fields:
        clone = f.model_copy(deep=True)
        if not carry_over_defaults:
            clone.value = empty_value(f.kind)
        copied.append(clone)
    return copied


def kind_map(fields: Iterable[FieldDefinition]) -> Dict[str, str]:
    """id -> kind for a field list"""
    return {f.id: f.kind for f in fields}


def dump_fields(fields: Iterable[FieldDefinition]) -> str:
    """Serialize fields to the JSON text stored in the database"""
    return json.dumps(_FIELD_LIST.dump_python(list(fields), mode="json"))


def load_fields(payload: str) -> List[FieldDefinition]:
    """Inverse of dump_fields"""
    return parse_fields(json.loads(payload))
