"""
Raw string stores used by the accessor.

A backend only moves strings: it never parses or validates. Three
implementations are provided:

- MemoryBackend: process-local dict (the default "session" store).
- JsonFileBackend: one JSON document on disk mapping key -> raw string
  (the default "local" store).
- S3Backend: one S3 object per key under a prefix.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, Optional

import boto3
from botocore.exceptions import ClientError


logger = logging.getLogger(__name__)


class Backend(ABC):
    """Synchronous string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw value for key, or None when the key does not exist."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store the raw value for key, replacing any existing value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key if present."""

    @abstractmethod
    def clear_all(self) -> None:
        """Delete every key in this store."""


class MemoryBackend(Backend):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data


class JsonFileBackend(Backend):
    """
    File-backed store: a single JSON object `{key: raw string, ...}`.

    - Loaded lazily on first access, then kept in memory.
    - Every mutation rewrites the whole file through a temp file and
      `os.replace`, so readers never see a half-written document.
    - A corrupt file, or one that is not a JSON object, is logged and treated
      as empty; it is overwritten on the next mutation.
    - Write errors propagate (OSError).
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)
        self._data: Dict[str, str] = {}
        self._loaded = False
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as ex:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, ex)
            return
        if not isinstance(raw, dict):
            logger.warning("Ignoring storage file %s: top-level value is not an object", self._path)
            return
        # Non-string values cannot have been written by us; keep only strings
        self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        """Write `data` to disk, then adopt it as the in-memory state.

        On any write error the file and `self._data` are left as they were.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self._path)
        finally:
            if tmp.exists():
                tmp.unlink()
        self._data = data

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._ensure_loaded()
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_loaded()
            data = dict(self._data)
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock:
            self._ensure_loaded()
            if key not in self._data:
                return
            data = dict(self._data)
            del data[key]
            self._save(data)

    def clear_all(self) -> None:
        with self._lock:
            self._save({})
            self._loaded = True


class S3Backend(Backend):
    """
    S3-backed store: each key is an object at `{prefix}{key}` holding the raw
    UTF-8 string.

    - Missing objects (`NoSuchKey` / 404) read as None.
    - Other S3 errors propagate as `botocore.exceptions.ClientError`.
    - `clear_all()` deletes every object under the prefix.
    """

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str = "",
        s3: Optional[object] = None,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._bucket = bucket
        self._prefix = prefix

    def _object_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            resp = self._s3.get_object(Bucket=self._bucket, Key=self._object_key(key))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise
        return resp["Body"].read().decode("utf-8")

    def set(self, key: str, value: str) -> None:
        self._s3.put_object(
            Bucket=self._bucket,
            Key=self._object_key(key),
            Body=value.encode("utf-8"),
            ContentType="application/json",
        )

    def remove(self, key: str) -> None:
        # DeleteObject succeeds for missing keys
        self._s3.delete_object(Bucket=self._bucket, Key=self._object_key(key))

    def clear_all(self) -> None:
        # List everything first; deleting while paginating can skip objects
        for object_key in list(self._iter_object_keys()):
            self._s3.delete_object(Bucket=self._bucket, Key=object_key)

    def _iter_object_keys(self) -> Iterator[str]:
        token: Optional[str] = None
        while True:
            kwargs = {"Bucket": self._bucket, "Prefix": self._prefix}
            if token:
                kwargs["ContinuationToken"] = token
            resp = self._s3.list_objects_v2(**kwargs)
            for item in resp.get("Contents", []) or []:
                yield item["Key"]
            if not resp.get("IsTruncated"):
                return
            token = resp.get("NextContinuationToken")
