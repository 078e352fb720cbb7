"""
Schema-validated JSON persistence over named string stores.

Build an `Entry` once with `entry(...)`, then read and write it through an
`Accessor`:

    from pydantic import BaseModel
    from safe_storage import Accessor, entry

    class Profile(BaseModel):
        id: int
        name: str

    PROFILE = entry("profile", Profile, default=Profile(id=0, name=""))
    store = Accessor()
    store.set(PROFILE, Profile(id=1, name="Ada"))
    store.get(PROFILE)                          # Profile(id=1, name='Ada')
    store.get(PROFILE, on_failure="default")    # default if the stored value is invalid
"""

from .accessor import FAILURE_POLICIES, Accessor, BoundEntry, OnFailure
from .backends import Backend, JsonFileBackend, MemoryBackend, S3Backend
from .config import Settings, build_backends, load_settings
from .entry import LOCAL, MISSING, SESSION, Entry, entry
from .errors import (
    DecodeFailure,
    EncodeFailure,
    MissingDefault,
    SchemaViolation,
    StorageError,
    UnknownBackend,
    ValidationFailure,
)
from .schema import Validated, Validator, as_validator, infer_schema

__all__ = [
    # descriptors
    "Entry",
    "entry",
    "MISSING",
    "LOCAL",
    "SESSION",
    # accessor
    "Accessor",
    "BoundEntry",
    "OnFailure",
    "FAILURE_POLICIES",
    # schemas
    "Validator",
    "Validated",
    "as_validator",
    "infer_schema",
    # backends
    "Backend",
    "MemoryBackend",
    "JsonFileBackend",
    "S3Backend",
    # config
    "Settings",
    "load_settings",
    "build_backends",
    # errors
    "StorageError",
    "ValidationFailure",
    "DecodeFailure",
    "SchemaViolation",
    "EncodeFailure",
    "MissingDefault",
    "UnknownBackend",
]
