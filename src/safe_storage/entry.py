from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .schema import Validator, as_validator, infer_schema


T = TypeVar("T")

LOCAL = "local"
SESSION = "session"


class _Missing:
    """Marker for "no default configured" (distinct from a `None` default)."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(frozen=True, eq=False)
class Entry(Generic[T]):
    """
    Immutable description of one stored value.

    Fields
    - key: storage key the raw JSON text lives under. Entries may share a key
      to share state.
    - schema: validator applied on every read (and on writes, unless the
      accessor disables it).
    - default: fallback for `on_failure="default"` and for `init`. `MISSING`
      when not configured; `None` is a valid default.
    - backend: name of the store to use, `"local"` (default) or `"session"`.
      Resolved by the accessor on each call.

    Entries compare and hash by identity, so they work as dict keys even when
    the default is a list or dict.
    """

    key: str
    schema: Validator[T]
    default: Any = MISSING
    backend: str = LOCAL

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


def entry(
    key: str,
    schema: Any = None,
    *,
    default: Any = MISSING,
    backend: str = LOCAL,
) -> Entry[Any]:
    """Build an `Entry`.

    - With `schema`: any annotation, pydantic model, `TypeAdapter` or
      `Validator`. The default is not checked against it.
    - Without `schema`: a structural validator is inferred from `default`
      (see `infer_schema`); with neither, any JSON value is accepted.

    Nothing is validated here; bad keys, schemas or backend names surface when
    the entry is used.
    """
    validator = as_validator(schema) if schema is not None else infer_schema(default)
    return Entry(key=key, schema=validator, default=default, backend=backend)
