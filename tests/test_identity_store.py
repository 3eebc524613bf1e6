"""
Tests for the tenant-scoped identity store.

Verifies that:
1. The visitor id is created once and returned unchanged afterwards
2. Slots are isolated per tenant
3. Storage failures degrade to memory instead of raising
"""

import json
import re
from unittest.mock import Mock

import pytest
import redis

from widget_runtime.core.config import settings
from widget_runtime.services.identity_store import (
    FileIdentityStore,
    InMemoryIdentityStore,
    RedisIdentityStore,
    create_identity_store,
    generate_visitor_id,
)

VISITOR_ID_FORMAT = re.compile(r'^visitor_[0-9a-z]{9}$')


class TestVisitorIdentity:

    def test_generated_ids_have_expected_format(self):
        assert VISITOR_ID_FORMAT.match(generate_visitor_id())

    def test_get_or_create_is_idempotent(self):
        store = InMemoryIdentityStore()

        first = store.get_or_create_visitor_id("bot-1")
        second = store.get_or_create_visitor_id("bot-1")

        assert first == second
        assert VISITOR_ID_FORMAT.match(first)

    def test_visitor_ids_are_scoped_per_tenant(self):
        store = InMemoryIdentityStore()

        assert store.get_or_create_visitor_id("bot-1") != store.get_or_create_visitor_id("bot-2")


class TestConversationHandleSlot:

    def test_handle_absent_by_default(self):
        assert InMemoryIdentityStore().get_conversation_handle("bot-1") is None

    def test_set_get_and_clear(self):
        store = InMemoryIdentityStore()

        store.set_conversation_handle("bot-1", "conv-1")
        assert store.get_conversation_handle("bot-1") == "conv-1"
        assert store.get_conversation_handle("bot-2") is None

        store.clear_conversation_handle("bot-1")
        assert store.get_conversation_handle("bot-1") is None

    def test_clearing_handle_keeps_visitor_id(self):
        store = InMemoryIdentityStore()
        visitor_id = store.get_or_create_visitor_id("bot-1")
        store.set_conversation_handle("bot-1", "conv-1")

        store.clear_conversation_handle("bot-1")

        assert store.get_or_create_visitor_id("bot-1") == visitor_id


class TestFileIdentityStore:

    def test_identity_survives_a_new_store_instance(self, tmp_path):
        path = tmp_path / "storage.json"
        first = FileIdentityStore(path=str(path))
        visitor_id = first.get_or_create_visitor_id("bot-1")
        first.set_conversation_handle("bot-1", "conv-9")

        reloaded = FileIdentityStore(path=str(path))

        assert reloaded.get_or_create_visitor_id("bot-1") == visitor_id
        assert reloaded.get_conversation_handle("bot-1") == "conv-9"
        assert not reloaded.degraded

    def test_keys_are_prefixed_and_tenant_scoped(self, tmp_path):
        path = tmp_path / "storage.json"
        store = FileIdentityStore(path=str(path), key_prefix="voxtro")
        store.get_or_create_visitor_id("bot-1")
        store.set_conversation_handle("bot-1", "conv-1")

        data = json.loads(path.read_text())

        assert set(data) == {"voxtro:bot-1:visitor_id", "voxtro:bot-1:conversation_id"}

    def test_clear_removes_handle_from_disk(self, tmp_path):
        path = tmp_path / "storage.json"
        store = FileIdentityStore(path=str(path))
        store.set_conversation_handle("bot-1", "conv-1")

        store.clear_conversation_handle("bot-1")

        assert FileIdentityStore(path=str(path)).get_conversation_handle("bot-1") is None

    def test_unreadable_storage_falls_back_to_memory(self, tmp_path):
        # A directory where the JSON file should be cannot be opened
        store = FileIdentityStore(path=str(tmp_path))

        first = store.get_or_create_visitor_id("bot-1")
        second = store.get_or_create_visitor_id("bot-1")

        assert store.degraded
        assert first == second

    def test_corrupt_document_falls_back_to_memory(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json")
        store = FileIdentityStore(path=str(path))

        store.set_conversation_handle("bot-1", "conv-1")

        assert store.degraded
        assert store.get_conversation_handle("bot-1") == "conv-1"

    def test_values_read_before_failure_are_kept(self, tmp_path):
        path = tmp_path / "storage.json"
        store = FileIdentityStore(path=str(path))
        visitor_id = store.get_or_create_visitor_id("bot-1")

        path.write_text("[]")  # storage becomes unusable mid-session
        store.set_conversation_handle("bot-1", "conv-1")

        assert store.degraded
        assert store.get_or_create_visitor_id("bot-1") == visitor_id


class TestRedisIdentityStore:

    @pytest.fixture
    def redis_client(self):
        client = Mock()
        client.get.return_value = None
        return client

    def test_creates_and_writes_visitor_id(self, redis_client):
        store = RedisIdentityStore(redis_client=redis_client, key_prefix="voxtro")

        visitor_id = store.get_or_create_visitor_id("bot-1")

        redis_client.get.assert_called_once_with("voxtro:bot-1:visitor_id")
        redis_client.set.assert_called_once_with("voxtro:bot-1:visitor_id", visitor_id)

    def test_existing_visitor_id_is_reused(self, redis_client):
        redis_client.get.return_value = "visitor_abc123xyz"
        store = RedisIdentityStore(redis_client=redis_client)

        assert store.get_or_create_visitor_id("bot-1") == "visitor_abc123xyz"
        redis_client.set.assert_not_called()

    def test_clear_deletes_handle_key(self, redis_client):
        store = RedisIdentityStore(redis_client=redis_client, key_prefix="voxtro")

        store.clear_conversation_handle("bot-1")

        redis_client.delete.assert_called_once_with("voxtro:bot-1:conversation_id")

    def test_redis_outage_degrades_to_memory(self, redis_client):
        redis_client.get.side_effect = redis.ConnectionError("down")
        redis_client.set.side_effect = redis.ConnectionError("down")
        store = RedisIdentityStore(redis_client=redis_client)

        first = store.get_or_create_visitor_id("bot-1")
        second = store.get_or_create_visitor_id("bot-1")

        assert store.degraded
        assert first == second
        # No further Redis traffic once degraded
        assert redis_client.get.call_count == 1


class TestCreateIdentityStore:

    def test_memory_backend(self):
        assert isinstance(create_identity_store("memory"), InMemoryIdentityStore)

    def test_redis_backend_without_url_uses_memory(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setattr(settings, "REDIS_URL", None)

        assert isinstance(create_identity_store("redis"), InMemoryIdentityStore)

    def test_unknown_backend_uses_memory(self):
        assert isinstance(create_identity_store("cookies"), InMemoryIdentityStore)
