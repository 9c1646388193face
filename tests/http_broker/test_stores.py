"""Tests for key/value stores and the response cache."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from HttpBroker.envelope import ResponseBody, ResponseEnvelope, ValidationState
from HttpBroker.stores import (
    STORE_NAMES,
    FileStore,
    MemoryStore,
    ResponseCache,
    open_store,
)


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(params=["memory", "file"])
def store_and_clock(request, tmp_path: Path):
    clock = Clock()
    if request.param == "memory":
        return MemoryStore(clock=clock), clock
    return FileStore(tmp_path / "store", clock=clock), clock


def test_get_missing_is_none(store_and_clock) -> None:
    store, _ = store_and_clock
    assert store.get("nope") is None


def test_set_get_delete(store_and_clock) -> None:
    store, _ = store_and_clock
    store.set("k[user-1]", {"a": [1, 2]})
    assert store.get("k[user-1]") == {"a": [1, 2]}
    assert store.delete("k[user-1]") is True
    assert store.delete("k[user-1]") is False
    assert store.get("k[user-1]") is None


def test_ttl_expiry(store_and_clock) -> None:
    store, clock = store_and_clock
    store.set("k", 1, ttl=10)
    clock.now += 9
    assert store.get("k") == 1
    clock.now += 1
    assert store.get("k") is None


def test_zero_ttl_never_expires(store_and_clock) -> None:
    store, clock = store_and_clock
    store.set("k", "v", ttl=0)
    clock.now += 10**6
    assert store.get("k") == "v"


def test_values_are_copied(store_and_clock) -> None:
    store, _ = store_and_clock
    value = {"a": [1]}
    store.set("k", value)
    value["a"].append(2)
    fetched = store.get("k")
    fetched["a"].append(3)
    assert store.get("k") == {"a": [1]}


def test_file_store_drops_corrupt_entry(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    store.set("k", 1)
    store._path("k").write_text("{corrupt", encoding="utf-8")
    assert store.get("k") is None
    assert not store._path("k").exists()


def test_file_store_shared_between_instances(tmp_path: Path) -> None:
    FileStore(tmp_path).set("k", {"v": 1})
    assert FileStore(tmp_path).get("k") == {"v": 1}


def test_open_store(tmp_path: Path) -> None:
    assert isinstance(open_store(STORE_NAMES[0]), MemoryStore)
    store = open_store(STORE_NAMES[1], tmp_path)
    assert isinstance(store, FileStore)
    assert store.directory == tmp_path / STORE_NAMES[1]
    with pytest.raises(ValueError):
        open_store("http-nothing", tmp_path)


def test_response_cache_round_trip_uses_default_ttl() -> None:
    clock = Clock()
    cache = ResponseCache(MemoryStore(clock=clock), ttl_default=60)
    envelope = ResponseEnvelope(
        status=200,
        headers={"X-HttpBroker-Final-Status": 200},
        body=ResponseBody(True, 200, {"id": 1}),
        validated=ValidationState.PASSED,
    )
    cache.set("op[user-u]", envelope)
    envelope.body.data["id"] = 2

    cached = cache.get("op[user-u]")
    assert cached is not None
    assert cached.body.data == {"id": 1}
    assert cached.validated is ValidationState.PASSED

    clock.now += 60
    assert cache.get("op[user-u]") is None


def test_memory_store_len_is_consistent_under_concurrent_writes() -> None:
    store = MemoryStore()
    sizes = []

    def writer(prefix: str) -> None:
        for index in range(200):
            store.set(f"{prefix}{index}", index)
            sizes.append(len(store))

    threads = [threading.Thread(target=writer, args=(prefix,)) for prefix in "abcd"]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(store) == 800
    assert max(sizes) == 800
    assert all(0 < size <= 800 for size in sizes)
