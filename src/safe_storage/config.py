from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from .backends import Backend, JsonFileBackend, MemoryBackend, S3Backend
from .entry import LOCAL, SESSION


# Environment variable names
ENV_LOCAL_PATH = "SAFE_STORAGE_LOCAL_PATH"
ENV_S3_BUCKET = "SAFE_STORAGE_S3_BUCKET"
ENV_S3_PREFIX = "SAFE_STORAGE_S3_PREFIX"
ENV_KEY_PREFIX = "SAFE_STORAGE_KEY_PREFIX"
ENV_EMPTY_IS_ABSENT = "SAFE_STORAGE_EMPTY_IS_ABSENT"
ENV_VALIDATE_ON_WRITE = "SAFE_STORAGE_VALIDATE_ON_WRITE"

DEFAULT_LOCAL_PATH = os.path.join(".safe_storage", "local.json")
DEFAULT_S3_PREFIX = "safe-storage/"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _getenv_bool(name: str, default: bool) -> bool:
    val = _getenv(name)
    if val is None:
        return default
    norm = val.strip().lower()
    if norm in _TRUE:
        return True
    if norm in _FALSE:
        return False
    raise RuntimeError(f"Invalid boolean for {name}: {val!r}")


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for `Accessor.from_env()`.

    - local_path: JSON file backing the "local" store (ignored when s3_bucket is set).
    - s3_bucket / s3_prefix: when s3_bucket is set, "local" is an S3Backend.
    - key_prefix: namespace prepended to every entry key as "{prefix}:{key}".
    - empty_is_absent: read an empty stored string as a missing key.
    - validate_on_write: validate values before `set` writes them.
    """

    local_path: str = DEFAULT_LOCAL_PATH
    s3_bucket: Optional[str] = None
    s3_prefix: str = DEFAULT_S3_PREFIX
    key_prefix: str = ""
    empty_is_absent: bool = True
    validate_on_write: bool = True


def load_settings() -> Settings:
    return Settings(
        local_path=_getenv(ENV_LOCAL_PATH, DEFAULT_LOCAL_PATH) or DEFAULT_LOCAL_PATH,
        s3_bucket=_getenv(ENV_S3_BUCKET),
        s3_prefix=_getenv(ENV_S3_PREFIX, DEFAULT_S3_PREFIX) or DEFAULT_S3_PREFIX,
        key_prefix=_getenv(ENV_KEY_PREFIX, "") or "",
        empty_is_absent=_getenv_bool(ENV_EMPTY_IS_ABSENT, True),
        validate_on_write=_getenv_bool(ENV_VALIDATE_ON_WRITE, True),
    )


def build_backends(settings: Settings, *, s3: Optional[object] = None) -> Dict[str, Backend]:
    """Create the standard {"local", "session"} backend registry."""
    local: Backend
    if settings.s3_bucket:
        local = S3Backend(bucket=settings.s3_bucket, prefix=settings.s3_prefix, s3=s3)
    else:
        local = JsonFileBackend(settings.local_path)
    return {LOCAL: local, SESSION: MemoryBackend()}
