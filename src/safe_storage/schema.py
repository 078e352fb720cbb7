"""
Validation layer between decoded JSON and typed values.

Validation is delegated to pydantic. A `Validator` wraps a `TypeAdapter` and
reports outcomes as a `Validated` result instead of raising, so the accessor
can apply its failure policy. Any annotation pydantic understands can serve as
a schema: models, `list[int]`, `Literal[...]`, unions, enums, tuples,
TypedDicts, and `Annotated[...]` types with constraints or transforms.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import (
    AllowInfNan,
    BaseModel,
    Strict,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
)
from pydantic_core import PydanticSerializationError
from typing_extensions import TypedDict

from .errors import EncodeFailure


T = TypeVar("T")

# Finite JSON number: ints stay ints, NaN/Infinity are rejected.
InferredNumber = Union[StrictInt, Annotated[float, Strict(), AllowInfNan(False)]]


@dataclass(frozen=True)
class Validated(Generic[T]):
    ok: bool
    value: Optional[T] = None
    issues: List[Dict[str, Any]] = field(default_factory=list)


class Validator(Generic[T]):
    """Schema capability: checks (and possibly transforms) a decoded value."""

    def __init__(self, annotation: Any) -> None:
        self._annotation = annotation
        self._adapter: TypeAdapter[T] = TypeAdapter(annotation)

    @classmethod
    def from_adapter(cls, adapter: TypeAdapter[T]) -> "Validator[T]":
        inst = cls.__new__(cls)
        inst._annotation = getattr(adapter, "_type", None)
        inst._adapter = adapter
        return inst

    @property
    def annotation(self) -> Any:
        return self._annotation

    def validate(self, decoded: Any) -> Validated[T]:
        try:
            value = self._adapter.validate_python(decoded)
        except ValidationError as ex:
            return Validated(ok=False, issues=ex.errors(include_url=False))
        return Validated(ok=True, value=value)

    def validate_json(self, raw: str) -> Validated[T]:
        """Validate stored JSON text under JSON-mode rules.

        Strict schemas accept the JSON forms `to_jsonable` produces (enum
        values, ISO datetimes, lists for tuples) only in this mode.
        """
        try:
            value = self._adapter.validate_json(raw)
        except ValidationError as ex:
            return Validated(ok=False, issues=ex.errors(include_url=False))
        return Validated(ok=True, value=value)

    def to_jsonable(self, value: T) -> Any:
        """Dump an already-validated value to plain JSON-compatible data."""
        try:
            return self._adapter.dump_python(value, mode="json")
        except PydanticSerializationError as ex:
            raise EncodeFailure(f"value is not JSON serializable: {ex}") from ex

    def __repr__(self) -> str:
        return f"Validator({self._annotation!r})"


def as_validator(schema: Any) -> Validator[Any]:
    """Coerce a schema given in any supported form into a `Validator`."""
    if isinstance(schema, Validator):
        return schema
    if isinstance(schema, TypeAdapter):
        return Validator.from_adapter(schema)
    return Validator(schema)


def infer_schema(default: Any) -> Validator[Any]:
    """Derive a structural validator from the shape of a default value.

    Only types and shapes are checked: no ranges, formats or lengths. An empty
    list accepts items of any type and an empty dict accepts any object.
    """
    return Validator(_infer_annotation(default))


def _infer_annotation(value: Any, path: str = "Inferred") -> Any:
    if isinstance(value, BaseModel):
        return type(value)
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return StrictBool
    if isinstance(value, (int, float)):
        return InferredNumber
    if isinstance(value, str):
        return StrictStr
    if isinstance(value, (list, tuple)):
        if not value:
            return List[Any]
        return List[_infer_annotation(value[0], f"{path}Item")]  # type: ignore[misc]
    if isinstance(value, dict):
        if not value:
            return Dict[str, Any]
        fields = {
            str(k): _infer_annotation(v, f"{path}_{_ident(k)}") for k, v in value.items()
        }
        return TypedDict(path, fields)  # type: ignore[operator]
    return Any


def _ident(key: Any) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in str(key)) or "field"
