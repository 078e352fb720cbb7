from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, Generic, Literal, Mapping, Optional, TypeVar

from pydantic_core import PydanticSerializationError, to_jsonable_python

from .backends import Backend, MemoryBackend
from .config import Settings, build_backends, load_settings
from .entry import LOCAL, SESSION, Entry
from .errors import (
    DecodeFailure,
    EncodeFailure,
    MissingDefault,
    SchemaViolation,
    UnknownBackend,
    ValidationFailure,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

OnFailure = Literal["null", "default", "throw"]
FAILURE_POLICIES = ("null", "default", "throw")


class Accessor:
    """
    Typed get/set/remove/init over named string stores.

    Every call resolves the entry's backend by name, reads or writes the raw
    JSON text and validates it through the entry's schema. Nothing is cached
    between calls.

    Reads
    - A missing key (or an empty string, unless `empty_is_absent=False`)
      returns None under every failure policy.
    - Malformed JSON and schema mismatches are failures, handled per call:
      `on_failure="null"` (default) returns None, `"default"` returns the
      entry's default, `"throw"` raises `DecodeFailure` / `SchemaViolation`.

    Writes
    - With `validate_on_write` (default), `set` raises `SchemaViolation` and
      writes nothing when the value does not conform. The stored form is the
      validated (possibly transformed) value.
    - `init` always overwrites with the entry's default.
    """

    def __init__(
        self,
        backends: Optional[Mapping[str, Backend]] = None,
        *,
        key_prefix: str = "",
        empty_is_absent: bool = True,
        validate_on_write: bool = True,
    ) -> None:
        if backends is None:
            backends = {LOCAL: MemoryBackend(), SESSION: MemoryBackend()}
        self._backends: Dict[str, Backend] = dict(backends)
        self.key_prefix = key_prefix
        self.empty_is_absent = empty_is_absent
        self.validate_on_write = validate_on_write

    # -------- Construction helpers --------
    @classmethod
    def from_settings(cls, settings: Settings, *, s3: Optional[object] = None) -> "Accessor":
        return cls(
            build_backends(settings, s3=s3),
            key_prefix=settings.key_prefix,
            empty_is_absent=settings.empty_is_absent,
            validate_on_write=settings.validate_on_write,
        )

    @classmethod
    def from_env(cls) -> "Accessor":
        return cls.from_settings(load_settings())

    # -------- Core operations --------
    def get(self, entry: Entry[T], *, on_failure: OnFailure = "null") -> Optional[T]:
        """Read, decode and validate the value stored for `entry`.

        Returns None when nothing is stored. Raises:
        - ValueError for an unknown `on_failure` policy.
        - UnknownBackend if the entry's backend is not registered.
        - DecodeFailure / SchemaViolation under `on_failure="throw"`.
        - MissingDefault under `on_failure="default"` when the entry has no default.
        """
        if on_failure not in FAILURE_POLICIES:
            raise ValueError(f"on_failure must be one of {FAILURE_POLICIES}, got {on_failure!r}")

        backend = self._resolve(entry)
        raw = backend.get(self._storage_key(entry))
        if self._is_absent(raw):
            logger.debug("No value stored for %r in %s", entry.key, entry.backend)
            return None

        try:
            return self._decode(entry, raw)  # type: ignore[arg-type]
        except ValidationFailure as ex:
            logger.warning(
                "Invalid value for %r in %s (%s); on_failure=%s",
                entry.key,
                entry.backend,
                type(ex).__name__,
                on_failure,
            )
            if on_failure == "throw":
                raise
            if on_failure == "default":
                if not entry.has_default:
                    raise MissingDefault(entry.key) from ex
                # Callers get their own copy; the entry's default stays fixed
                return copy.deepcopy(entry.default)
            return None

    def set(self, entry: Entry[T], value: T) -> None:
        """Serialize `value` to JSON and store it, replacing any existing value."""
        backend = self._resolve(entry)
        raw = self._encode(entry, value)
        backend.set(self._storage_key(entry), raw)
        logger.debug("Stored %d chars for %r in %s", len(raw), entry.key, entry.backend)

    def remove(self, entry: Entry[Any]) -> None:
        """Delete the stored value; no-op when nothing is stored."""
        self._resolve(entry).remove(self._storage_key(entry))
        logger.debug("Removed %r from %s", entry.key, entry.backend)

    def init(self, entry: Entry[Any]) -> None:
        """Overwrite the stored value with the entry's default (even if one exists)."""
        if not entry.has_default:
            raise MissingDefault(entry.key)
        self.set(entry, entry.default)

    # -------- Extras --------
    def exists(self, entry: Entry[Any]) -> bool:
        """True if a non-absent raw value is stored (valid or not)."""
        raw = self._resolve(entry).get(self._storage_key(entry))
        return not self._is_absent(raw)

    def clear(self, backend: str = LOCAL) -> None:
        """Delete every key in one backend, including keys outside `key_prefix`."""
        self._backend(backend).clear_all()
        logger.debug("Cleared backend %s", backend)

    def bind(self, entry: Entry[T]) -> "BoundEntry[T]":
        return BoundEntry(self, entry)

    @property
    def backends(self) -> Mapping[str, Backend]:
        return dict(self._backends)

    # -------- Internals --------
    def _backend(self, name: str) -> Backend:
        try:
            return self._backends[name]
        except KeyError:
            raise UnknownBackend(name) from None

    def _resolve(self, entry: Entry[Any]) -> Backend:
        return self._backend(entry.backend)

    def _storage_key(self, entry: Entry[Any]) -> str:
        if self.key_prefix:
            return f"{self.key_prefix}:{entry.key}"
        return entry.key

    def _is_absent(self, raw: Optional[str]) -> bool:
        if raw is None:
            return True
        return self.empty_is_absent and raw == ""

    def _decode(self, entry: Entry[T], raw: str) -> T:
        # json.loads only classifies malformed text; validation runs on the raw JSON
        try:
            json.loads(raw)
        except (ValueError, RecursionError) as ex:
            raise DecodeFailure(entry.key, raw, str(ex)) from ex
        result = entry.schema.validate_json(raw)
        if not result.ok:
            if any(issue.get("type") == "json_invalid" for issue in result.issues):
                raise DecodeFailure(entry.key, raw, result.issues[0].get("msg", "invalid JSON"))
            raise SchemaViolation(entry.key, result.issues)
        return result.value  # type: ignore[return-value]

    def _encode(self, entry: Entry[T], value: T) -> str:
        if self.validate_on_write:
            result = entry.schema.validate(value)
            if not result.ok:
                raise SchemaViolation(entry.key, result.issues)
            data = entry.schema.to_jsonable(result.value)  # type: ignore[arg-type]
        else:
            try:
                data = to_jsonable_python(value)
            except PydanticSerializationError as ex:
                raise EncodeFailure(f"value for {entry.key!r} is not JSON serializable: {ex}") from ex
        try:
            # Deterministic JSON: stable key order, no extra whitespace
            return json.dumps(data, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as ex:
            raise EncodeFailure(f"value for {entry.key!r} is not JSON serializable: {ex}") from ex


class BoundEntry(Generic[T]):
    """An entry paired with an accessor: `handle.get()`, `handle.set(v)`, ..."""

    def __init__(self, accessor: Accessor, entry: Entry[T]) -> None:
        self._accessor = accessor
        self._entry = entry

    @property
    def entry(self) -> Entry[T]:
        return self._entry

    def get(self, *, on_failure: OnFailure = "null") -> Optional[T]:
        return self._accessor.get(self._entry, on_failure=on_failure)

    def set(self, value: T) -> None:
        self._accessor.set(self._entry, value)

    def remove(self) -> None:
        self._accessor.remove(self._entry)

    def init(self) -> None:
        self._accessor.init(self._entry)

    def exists(self) -> bool:
        return self._accessor.exists(self._entry)
