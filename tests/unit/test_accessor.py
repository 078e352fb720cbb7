from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional, Tuple
from uuid import UUID

import pytest
from pydantic import AfterValidator, BaseModel, ConfigDict, FiniteFloat
from typing_extensions import TypedDict

from safe_storage import (
    Accessor,
    DecodeFailure,
    MemoryBackend,
    MissingDefault,
    SchemaViolation,
    UnknownBackend,
    ValidationFailure,
    entry,
)


class User(TypedDict):
    id: int
    name: str


class Profile(BaseModel):
    id: int
    name: str


class Color(str, Enum):
    RED = "red"
    BLUE = "blue"


class Snapshot(BaseModel):
    model_config = ConfigDict(strict=True)

    color: Color
    at: datetime
    span: Tuple[int, int]
    ref: UUID


def _accessor(**kwargs):
    local = MemoryBackend()
    session = MemoryBackend()
    return Accessor({"local": local, "session": session}, **kwargs), local, session


def test_set_then_get_roundtrip_model():
    store, _, _ = _accessor()
    profile = entry("profile", Profile, default=Profile(id=0, name=""))

    store.set(profile, Profile(id=7, name="Ada"))
    assert store.get(profile) == Profile(id=7, name="Ada")


def test_set_then_get_roundtrip_nested_collections():
    store, local, _ = _accessor()
    users = entry("users", List[User], default=[])

    store.set(users, [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
    assert store.get(users) == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
    # Compact JSON, sorted keys
    assert local.get("users") == '[{"id":1,"name":"a"},{"id":2,"name":"b"}]'


def test_transform_applied_on_write_and_idempotent_on_read():
    store, local, _ = _accessor()
    code = entry("code", Annotated[str, AfterValidator(str.upper)])

    store.set(code, "abc")
    assert local.get("code") == '"ABC"'
    assert store.get(code) == "ABC"


def test_missing_key_is_none_under_every_policy():
    store, _, _ = _accessor()
    numbers = entry("numbers", List[int], default=[1])

    assert store.get(numbers) is None
    assert store.get(numbers, on_failure="default") is None
    assert store.get(numbers, on_failure="throw") is None


def test_missing_key_is_none_even_without_default():
    store, _, _ = _accessor()
    numbers = entry("numbers", List[int])

    assert store.get(numbers, on_failure="default") is None


def test_empty_string_is_absent_by_default():
    store, local, _ = _accessor()
    name = entry("name", str, default="x")
    local.set("name", "")

    assert store.get(name, on_failure="throw") is None
    assert store.exists(name) is False


def test_empty_string_decodes_when_not_absent():
    store, local, _ = _accessor(empty_is_absent=False)
    name = entry("name", str, default="x")
    local.set("name", "")

    assert store.exists(name) is True
    with pytest.raises(DecodeFailure):
        store.get(name, on_failure="throw")
    assert store.get(name, on_failure="default") == "x"


def test_policies_on_same_corrupted_state():
    store, local, _ = _accessor()
    user = entry("user", User, default={"id": 0, "name": ""})
    local.set("user", '{"id":"1"}')

    assert store.get(user) is None
    assert store.get(user, on_failure="default") == {"id": 0, "name": ""}
    with pytest.raises(SchemaViolation) as exc_info:
        store.get(user, on_failure="throw")
    assert [issue["loc"] for issue in exc_info.value.issues] == [("name",)]
    # Reads never modify the stored value
    assert local.get("user") == '{"id":"1"}'


def test_policies_with_inferred_schema():
    store, local, _ = _accessor()
    user = entry("user", default={"id": 0, "name": ""})
    local.set("user", '{"id":"1"}')

    assert store.get(user) is None
    assert store.get(user, on_failure="default") == {"id": 0, "name": ""}
    with pytest.raises(SchemaViolation):
        store.get(user, on_failure="throw")


def test_malformed_json_follows_policy():
    store, local, _ = _accessor()
    numbers = entry("numbers", List[float], default=[1, 2, 3])

    store.set(numbers, [1, 2, 3])
    assert store.get(numbers) == [1, 2, 3]

    local.set("numbers", "not json")
    assert store.get(numbers) is None
    assert store.get(numbers, on_failure="default") == [1, 2, 3]
    with pytest.raises(DecodeFailure) as exc_info:
        store.get(numbers, on_failure="throw")
    assert exc_info.value.raw == "not json"
    assert exc_info.value.key == "numbers"


def test_decode_and_schema_failures_share_a_base_class():
    store, local, _ = _accessor()
    flag = entry("flag", bool)

    local.set("flag", "{")
    with pytest.raises(ValidationFailure):
        store.get(flag, on_failure="throw")

    local.set("flag", '"maybe"')
    with pytest.raises(ValidationFailure) as exc_info:
        store.get(flag, on_failure="throw")
    assert not isinstance(exc_info.value, DecodeFailure)


def test_non_finite_numbers_rejected_by_validator():
    store, local, _ = _accessor()
    ratio = entry("ratio", FiniteFloat, default=1.0)
    local.set("ratio", "NaN")

    assert store.get(ratio) is None
    assert store.get(ratio, on_failure="default") == 1.0
    with pytest.raises(ValidationFailure):
        store.get(ratio, on_failure="throw")

    counter = entry("counter", default=0)
    local.set("counter", "Infinity")
    assert store.get(counter) is None


def test_default_policy_without_default_raises_missing_default():
    store, local, _ = _accessor()
    numbers = entry("numbers", List[int])
    local.set("numbers", '"oops"')

    with pytest.raises(MissingDefault):
        store.get(numbers, on_failure="default")
    assert store.get(numbers) is None


def test_none_is_a_valid_default():
    store, local, _ = _accessor()
    maybe = entry("maybe", Optional[int], default=None)
    local.set("maybe", '"x"')

    assert maybe.has_default is True
    assert store.get(maybe, on_failure="default") is None
    store.init(maybe)
    assert local.get("maybe") == "null"


def test_unknown_policy_rejected():
    store, _, _ = _accessor()
    numbers = entry("numbers", List[int])

    with pytest.raises(ValueError):
        store.get(numbers, on_failure="ignore")  # type: ignore[arg-type]


def test_set_validates_before_write():
    store, local, _ = _accessor()
    count = entry("count", int, default=0)
    store.set(count, 3)

    with pytest.raises(SchemaViolation):
        store.set(count, "three")
    assert local.get("count") == "3"


def test_set_without_validation_writes_as_given():
    store, local, _ = _accessor(validate_on_write=False)
    count = entry("count", int, default=0)

    store.set(count, "three")
    assert local.get("count") == '"three"'
    assert store.get(count) is None
    assert store.get(count, on_failure="default") == 0


def test_remove_then_get_is_none():
    store, _, _ = _accessor()
    count = entry("count", int, default=0)
    store.set(count, 5)

    store.remove(count)
    assert store.get(count) is None
    # Removing again is a no-op
    store.remove(count)


def test_init_overwrites_existing_value():
    store, _, _ = _accessor()
    numbers = entry("numbers", List[int], default=[0])

    store.set(numbers, [9, 9])
    store.init(numbers)
    assert store.get(numbers) == [0]


def test_init_without_default_raises():
    store, local, _ = _accessor()
    numbers = entry("numbers", List[int])

    with pytest.raises(MissingDefault):
        store.init(numbers)
    assert local.get("numbers") is None


def test_backend_isolation():
    store, local, session = _accessor()
    in_local = entry("theme", str, default="light")
    in_session = entry("theme", str, default="light", backend="session")

    store.set(in_session, "dark")
    assert store.get(in_local) is None
    assert local.get("theme") is None

    store.set(in_local, "light")
    store.remove(in_session)
    assert store.get(in_local) == "light"
    assert session.get("theme") is None


def test_entries_sharing_a_key_share_state():
    store, _, _ = _accessor()
    a = entry("shared", int, default=0)
    b = entry("shared", int, default=1)

    store.set(a, 42)
    assert store.get(b) == 42


def test_unknown_backend_fails_at_call_time():
    store, _, _ = _accessor()
    cloud = entry("k", int, backend="cloud")

    with pytest.raises(UnknownBackend) as exc_info:
        store.get(cloud)
    assert isinstance(exc_info.value, KeyError)
    with pytest.raises(UnknownBackend):
        store.set(cloud, 1)


def test_key_prefix_namespaces_storage_keys():
    store, local, _ = _accessor(key_prefix="app")
    count = entry("count", int, default=0)

    store.set(count, 1)
    assert local.get("app:count") == "1"
    assert local.get("count") is None
    assert store.get(count) == 1


def test_clear_only_affects_named_backend():
    store, local, session = _accessor()
    store.set(entry("a", int), 1)
    store.set(entry("b", int, backend="session"), 2)

    store.clear("local")
    assert len(local) == 0
    assert session.get("b") == "2"

    with pytest.raises(UnknownBackend):
        store.clear("cloud")


def test_bound_entry_delegates_to_accessor():
    store, _, _ = _accessor()
    handle = store.bind(entry("tags", List[str], default=[]))

    assert handle.get() is None
    handle.set(["x", "y"])
    assert handle.exists() is True
    assert handle.get() == ["x", "y"]
    handle.init()
    assert handle.get() == []
    handle.remove()
    assert handle.get(on_failure="throw") is None


def test_default_accessor_has_local_and_session():
    store = Accessor()
    assert set(store.backends) == {"local", "session"}


def test_invalid_read_is_logged_without_value(caplog):
    store, local, _ = _accessor()
    secret = entry("secret", int)
    local.set("secret", '"hunter2"')

    with caplog.at_level(logging.WARNING, logger="safe_storage.accessor"):
        assert store.get(secret) is None
    assert "secret" in caplog.text
    assert "SchemaViolation" in caplog.text
    assert "hunter2" not in caplog.text


def test_strict_model_roundtrip_through_json_text():
    store, local, _ = _accessor()
    snapshot = entry("snapshot", Snapshot)
    value = Snapshot(
        color=Color.RED,
        at=datetime(2024, 1, 1),
        span=(1, 2),
        ref=UUID("12345678-1234-5678-1234-567812345678"),
    )

    store.set(snapshot, value)
    assert '"color":"red"' in local.get("snapshot")
    assert store.get(snapshot, on_failure="throw") == value


def test_strict_schema_still_rejects_wrong_types():
    store, local, _ = _accessor()
    snapshot = entry("snapshot", Snapshot)
    local.set("snapshot", '{"at":"2024-01-01T00:00:00","color":"green","ref":"x","span":[1,2]}')

    with pytest.raises(SchemaViolation):
        store.get(snapshot, on_failure="throw")


def test_default_recovery_returns_independent_copy():
    store, local, _ = _accessor()
    numbers = entry("numbers", List[int], default=[1, 2, 3])
    local.set("numbers", "not json")

    recovered = store.get(numbers, on_failure="default")
    recovered.append(99)

    assert numbers.default == [1, 2, 3]
    assert store.get(numbers, on_failure="default") == [1, 2, 3]
    store.init(numbers)
    assert local.get("numbers") == "[1,2,3]"


def test_deeply_nested_text_follows_policy():
    store, local, _ = _accessor()
    numbers = entry("numbers", List[int], default=[])
    local.set("numbers", "[" * 100000)

    assert store.get(numbers) is None
    assert store.get(numbers, on_failure="default") == []
    with pytest.raises(DecodeFailure):
        store.get(numbers, on_failure="throw")


def test_entries_with_mutable_defaults_are_hashable():
    a = entry("nums", default=[1])
    b = entry("nums", default=[1])

    lookup = {a: "a", b: "b"}
    assert lookup[a] == "a"
    assert lookup[b] == "b"
