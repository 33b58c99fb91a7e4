import json

from events import EventTypes, event_bus
from ledger.models import IdentityScope
from session import JsonFileStore, MemoryStore, NotifyingStore, Origin, ResilientStore, StorageNotifier
from fakes import FailingStore


def test_json_store_survives_reopen(tmp_path):
    path = tmp_path / "shared" / "store.json"
    store = JsonFileStore(str(path))
    store.set("greeting", "hello")
    store.set("other", "value")
    store.remove("other")

    reopened = JsonFileStore(str(path))

    assert reopened.get("greeting") == "hello"
    assert reopened.get("other") is None
    assert reopened.keys() == ["greeting"]
    assert reopened.scope == IdentityScope.SHARED


def test_json_store_sees_writes_from_another_instance(tmp_path):
    path = str(tmp_path / "store.json")
    first = JsonFileStore(path)
    second = JsonFileStore(path)
    assert second.get("key") is None

    first.set("key", "value")

    assert second.get("key") == "value"


def test_corrupt_json_reads_as_empty(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{broken", encoding="utf-8")

    store = JsonFileStore(str(path))
    assert store.get("anything") is None

    store.set("key", "value")
    assert json.loads(path.read_text(encoding="utf-8")) == {"key": "value"}


def test_resilient_store_degrades_to_memory_once():
    backend = FailingStore()
    degraded = []
    store = ResilientStore(backend, on_degraded=degraded.append)

    store.set("key", "value")
    store.set("key2", "value2")

    assert store.degraded
    assert store.get("key") == "value"
    assert len(degraded) == 1
    assert backend.calls == 1


def test_origin_reports_degraded_storage():
    seen = []
    unsubscribe = event_bus.on(EventTypes.STORAGE_DEGRADED, seen.append)
    try:
        origin = Origin(FailingStore(), name="broken")
        origin.shared_store.set("key", "value")
    finally:
        unsubscribe()

    assert origin.degraded
    assert seen[0].data["origin"] == "broken"


def test_notifying_store_announces_writes_with_writer():
    notifier = StorageNotifier()
    calls = []
    unsubscribe = notifier.subscribe(lambda key, writer: calls.append((key, writer)))
    store = NotifyingStore(MemoryStore(IdentityScope.SHARED), notifier, writer="tab-1")

    store.set("a", "1")
    store.remove("a")
    unsubscribe()
    store.set("b", "2")

    assert calls == [("a", "tab-1"), ("a", "tab-1")]
    assert notifier.subscriber_count == 0


def test_failing_listener_does_not_block_others():
    notifier = StorageNotifier()
    calls = []

    def broken(key, writer):
        raise RuntimeError("listener bug")

    notifier.subscribe(broken)
    notifier.subscribe(lambda key, writer: calls.append(key))

    notifier.publish("key")

    assert calls == ["key"]


def test_origin_from_config_uses_file_store(tmp_path):
    path = tmp_path / "shared.json"
    origin = Origin.from_config({"shared_store_path": str(path)})

    origin.shared_store.set("key", "value")

    assert json.loads(path.read_text(encoding="utf-8")) == {"key": "value"}
    assert not origin.degraded


def test_origin_from_config_defaults_to_memory():
    origin = Origin.from_config({"shared_store_path": ""})
    assert isinstance(origin.shared_store.backend, MemoryStore)
