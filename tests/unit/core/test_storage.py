import pytest
from unittest.mock import Mock, patch

from sqlalchemy.exc import OperationalError

from core.exceptions import PersistenceError
from core.storage import factory
from core.storage.memory_store import InMemoryKeyValueStore
from core.storage.sql_store import SqlKeyValueStore


@pytest.mark.unit
class TestInMemoryKeyValueStore:

    def test_get_and_set(self):
        store = InMemoryKeyValueStore()

        assert store.get("forms") is None
        store.set("forms", "[]")
        assert store.get("forms") == "[]"

    def test_initial_data_is_copied(self):
        initial = {"forms": "[]"}
        store = InMemoryKeyValueStore(initial)

        store.set("forms", "[1]")

        assert initial == {"forms": "[]"}


@pytest.mark.unit
class TestSqlKeyValueStore:

    def test_set_inserts_then_updates(self, session_factory):
        store = SqlKeyValueStore(session_factory)

        store.set("forms", "[1]")
        store.set("forms", "[1, 2]")

        assert store.get("forms") == "[1, 2]"

    def test_get_missing_key(self, session_factory):
        assert SqlKeyValueStore(session_factory).get("missing") is None

    def test_database_errors_become_persistence_errors(self):
        failing_factory = Mock(side_effect=OperationalError("SELECT 1", {}, Exception("database is locked")))
        store = SqlKeyValueStore(failing_factory)

        with pytest.raises(PersistenceError):
            store.get("forms")
        with pytest.raises(PersistenceError):
            store.set("forms", "[]")


@pytest.mark.unit
class TestStoreFactory:

    def setup_method(self):
        factory.reset_key_value_store()

    def teardown_method(self):
        factory.reset_key_value_store()

    def test_memory_backend(self):
        with patch("core.storage.factory.settings") as mock_settings:
            mock_settings.STORAGE_BACKEND = "memory"

            store = factory.get_key_value_store()

        assert isinstance(store, InMemoryKeyValueStore)
        assert factory.get_key_value_store() is store

    def test_unknown_backend(self):
        with patch("core.storage.factory.settings") as mock_settings:
            mock_settings.STORAGE_BACKEND = "redis"

            with pytest.raises(ValueError):
                factory.get_key_value_store()
