import json
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock

from core.exceptions import PersistenceError
from core.storage.base import KeyValueStore
from core.storage.memory_store import InMemoryKeyValueStore
from repositories.form_repository import FormRepository
from schemas.form import FormSchema

STORAGE_KEY = "dynamic-form-builder-forms"


def make_form(form_id: str, name: str = "Form") -> FormSchema:
    return FormSchema(
        id=form_id,
        name=name,
        created_at=datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc),
        fields=[],
    )


@pytest.mark.unit
class TestFormRepository:

    def setup_method(self):
        """Set up test data for each test."""
        self.store = InMemoryKeyValueStore()
        self.repository = FormRepository(self.store, storage_key=STORAGE_KEY)

    def test_load_all_empty_storage(self):
        assert self.repository.load_all() == []

    def test_round_trip(self, sample_form):
        self.repository.upsert(sample_form)

        loaded = self.repository.load_all()

        assert len(loaded) == 1
        assert loaded[0] == sample_form
        assert loaded[0].fields[2].derived.formula == "currentYear - birthYear"

    def test_stored_json_uses_camel_case(self, sample_form):
        self.repository.upsert(sample_form)

        payload = json.loads(self.store.get(STORAGE_KEY))

        assert payload[0]["id"] == sample_form.id
        assert "createdAt" in payload[0]
        assert payload[0]["fields"][0]["defaultValue"] == 1990
        assert payload[0]["fields"][2]["derived"]["parentFieldIds"] == ["birthYear"]

    def test_upsert_appends_new_forms(self):
        self.repository.upsert(make_form("form_1"))

        forms = self.repository.upsert(make_form("form_2"))

        assert [f.id for f in forms] == ["form_1", "form_2"]

    def test_upsert_replaces_by_id_in_place(self):
        self.repository.upsert(make_form("form_1", "One"))
        self.repository.upsert(make_form("form_2", "Two"))

        forms = self.repository.upsert(make_form("form_1", "One v2"))

        assert [(f.id, f.name) for f in forms] == [("form_1", "One v2"), ("form_2", "Two")]
        assert self.repository.load_all() == forms

    def test_remove(self):
        self.repository.upsert(make_form("form_1"))
        self.repository.upsert(make_form("form_2"))

        forms = self.repository.remove("form_1")

        assert [f.id for f in forms] == ["form_2"]
        assert [f.id for f in self.repository.load_all()] == ["form_2"]

    def test_remove_unknown_id_is_noop(self):
        self.repository.upsert(make_form("form_1"))

        assert [f.id for f in self.repository.remove("form_404")] == ["form_1"]

    def test_get(self):
        self.repository.upsert(make_form("form_1", "One"))

        assert self.repository.get("form_1").name == "One"
        assert self.repository.get("form_2") is None

    def test_corrupt_json_yields_empty_list(self):
        self.store.set(STORAGE_KEY, "{not json")

        assert self.repository.load_all() == []

    def test_non_list_payload_yields_empty_list(self):
        self.store.set(STORAGE_KEY, json.dumps({"id": "form_1"}))

        assert self.repository.load_all() == []

    def test_invalid_entries_are_skipped(self):
        valid = make_form("form_1").model_dump(mode="json", by_alias=True)
        self.store.set(STORAGE_KEY, json.dumps([{"name": "no id"}, valid, "garbage"]))

        forms = self.repository.load_all()

        assert [f.id for f in forms] == ["form_1"]

    def test_unknown_attributes_are_ignored(self):
        entry = make_form("form_1").model_dump(mode="json", by_alias=True)
        entry["theme"] = "dark"
        self.store.set(STORAGE_KEY, json.dumps([entry]))

        assert [f.id for f in self.repository.load_all()] == ["form_1"]

    def test_unreadable_store_yields_empty_list(self):
        store = Mock(spec=KeyValueStore)
        store.get.side_effect = PersistenceError("disk gone")
        repository = FormRepository(store, storage_key=STORAGE_KEY)

        assert repository.load_all() == []

    def test_write_failure_raises(self):
        store = Mock(spec=KeyValueStore)
        store.get.return_value = None
        store.set.side_effect = PersistenceError("disk full")
        repository = FormRepository(store, storage_key=STORAGE_KEY)

        with pytest.raises(PersistenceError):
            repository.upsert(make_form("form_1"))

    def test_write_after_failed_read_keeps_stored_forms(self):
        self.repository.upsert(make_form("form_1"))
        stored = self.store.get(STORAGE_KEY)
        store = Mock(spec=KeyValueStore)
        store.get.side_effect = PersistenceError("disk gone")
        repository = FormRepository(store, storage_key=STORAGE_KEY)

        with pytest.raises(PersistenceError):
            repository.upsert(make_form("form_2"))
        with pytest.raises(PersistenceError):
            repository.remove("form_1")

        store.set.assert_not_called()
        assert self.store.get(STORAGE_KEY) == stored

    def test_write_refuses_to_overwrite_corrupt_json(self):
        self.store.set(STORAGE_KEY, "{not json")

        with pytest.raises(PersistenceError):
            self.repository.upsert(make_form("form_1"))

        assert self.store.get(STORAGE_KEY) == "{not json"

    def test_unreadable_entries_survive_writes(self):
        legacy = {"name": "no id"}
        self.store.set(STORAGE_KEY, json.dumps([legacy, make_form("form_1").model_dump(mode="json", by_alias=True)]))

        forms = self.repository.upsert(make_form("form_2"))
        self.repository.remove("form_1")

        assert [f.id for f in forms] == ["form_1", "form_2"]
        assert json.loads(self.store.get(STORAGE_KEY))[0] == legacy
        assert [f.id for f in self.repository.load_all()] == ["form_2"]

    def test_default_storage_key(self):
        repository = FormRepository(self.store)

        assert repository.storage_key == STORAGE_KEY
