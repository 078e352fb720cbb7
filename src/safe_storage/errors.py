from __future__ import annotations

from typing import Any, Dict, List, Optional


class StorageError(Exception):
    """Base error for safe-storage."""


class ValidationFailure(StorageError):
    """A stored value could not be read back as a valid value for its entry.

    Raised by `Accessor.get(..., on_failure="throw")` and, for writes, by
    `Accessor.set` when validate-on-write rejects the value. Catch this class
    to handle both decode and schema problems; catch the subclasses to tell
    them apart.
    """

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{key!r}: {message}")
        self.key = key
        self.message = message


class DecodeFailure(ValidationFailure):
    """The raw stored string is not valid JSON."""

    def __init__(self, key: str, raw: str, message: str) -> None:
        super().__init__(key, f"stored value is not valid JSON ({message})")
        self.raw = raw


class SchemaViolation(ValidationFailure):
    """A decoded (or to-be-written) value does not conform to the schema.

    `issues` holds pydantic error dicts: `loc` is the field path, `msg`/`type`
    describe what was expected and `input` is the offending value.
    """

    def __init__(self, key: str, issues: Optional[List[Dict[str, Any]]] = None) -> None:
        self.issues: List[Dict[str, Any]] = list(issues or [])
        super().__init__(key, _summarize(self.issues))


class EncodeFailure(StorageError):
    """A value could not be serialized to JSON for writing."""


class MissingDefault(StorageError):
    """Default-based recovery or init was requested for an entry without a default."""

    def __init__(self, key: str) -> None:
        super().__init__(f"entry {key!r} has no default value")
        self.key = key


class UnknownBackend(StorageError, KeyError):
    """The entry names a backend that is not registered on the accessor."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"unknown storage backend: {self.name!r}"


def _summarize(issues: List[Dict[str, Any]]) -> str:
    if not issues:
        return "schema validation failed"
    parts = []
    for issue in issues[:3]:
        loc = ".".join(str(p) for p in issue.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {issue.get('msg', 'invalid')}")
    more = len(issues) - 3
    if more > 0:
        parts.append(f"and {more} more")
    return "schema validation failed: " + "; ".join(parts)
