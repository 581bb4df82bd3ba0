"""Contract tests shared by every key-value store implementation."""

import pytest

from chat_stream.storage import InMemoryStore, JSONFileStore


@pytest.fixture(params=["memory", "file"])
def store(request, temp_dir):
    if request.param == "memory":
        return InMemoryStore()
    return JSONFileStore(str(temp_dir / "store"))


class TestStoreContract:
    def test_missing_key_returns_default(self, store):
        assert store.get("chats") is None
        assert store.get("chats", []) == []

    def test_set_and_get(self, store):
        store.set("settings", {"temperature": 0.3})
        assert store.get("settings") == {"temperature": 0.3}

    def test_values_are_copies(self, store):
        value = {"items": [1]}
        store.set("k", value)
        value["items"].append(2)
        loaded = store.get("k")
        loaded["items"].append(3)
        assert store.get("k") == {"items": [1]}

    def test_updater_receives_previous_value(self, store):
        store.set("tools", lambda previous: (previous or []) + ["a"])
        store.set("tools", lambda previous: previous + ["b"])
        assert store.get("tools") == ["a", "b"]

    def test_updater_receives_default(self, store):
        store.set("count", lambda previous: previous + 1, default=41)
        assert store.get("count") == 42

    def test_clear(self, store):
        store.set("k", 1)
        store.clear("k")
        assert store.get("k") is None
        store.clear("never-set")

    def test_subscribe_and_unsubscribe(self, store):
        events = []
        unsubscribe = store.subscribe("k", lambda key, value: events.append((key, value)))

        store.set("k", 1)
        store.set("other", 2)
        store.clear("k")
        unsubscribe()
        store.set("k", 3)

        assert events == [("k", 1), ("k", None)]

    def test_failing_listener_does_not_break_writes(self, store):
        def broken(key, value):
            raise RuntimeError("listener failed")

        store.subscribe("k", broken)
        store.set("k", 1)
        assert store.get("k") == 1


class TestJSONFileStore:
    def test_changes_are_visible_to_other_instances(self, temp_dir):
        first = JSONFileStore(str(temp_dir))
        second = JSONFileStore(str(temp_dir))

        first.set("chats", [{"id": "1"}])
        assert second.get("chats") == [{"id": "1"}]
        assert (temp_dir / "chats.json").exists()

    def test_corrupt_file_returns_default(self, temp_dir):
        store = JSONFileStore(str(temp_dir))
        (temp_dir / "chats.json").write_text("{not json", encoding="utf-8")
        assert store.get("chats", []) == []

    def test_rejects_path_like_keys(self, temp_dir):
        store = JSONFileStore(str(temp_dir))
        with pytest.raises(ValueError):
            store.set("../escape", 1)
