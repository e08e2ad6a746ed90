"""Tests for the durable slot storage, pending-submission slot and auth session slot."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from expense_tracker.frontend.pending import (
    PENDING_SLOT,
    AuthSessionStore,
    PendingOperationStore,
    SubmissionPayload,
)
from expense_tracker.frontend.storage import FileSlotStorage

DINNER = SubmissionPayload(
    amount=Decimal("199.5"), category="Food", description="Dinner", date=date(2026, 2, 18)
)
TAXI = SubmissionPayload(
    amount=Decimal("320"), category="Travel", description="Taxi", date=date(2026, 2, 19)
)


@pytest.fixture
def store(slot_storage) -> PendingOperationStore:
    return PendingOperationStore(slot_storage)


class TestFileSlotStorage:
    def test_set_get_remove(self, slot_storage):
        assert slot_storage.get("thing") is None
        slot_storage.set("thing", '{"a": 1}')
        assert slot_storage.get("thing") == '{"a": 1}'
        slot_storage.remove("thing")
        assert slot_storage.get("thing") is None

    def test_remove_missing_slot_is_noop(self, slot_storage):
        slot_storage.remove("never_written")

    def test_values_survive_a_new_instance(self, slot_storage):
        slot_storage.set("thing", "kept")
        assert FileSlotStorage(slot_storage.state_dir).get("thing") == "kept"

    def test_no_temp_file_left_behind(self, slot_storage):
        slot_storage.set("thing", "value")
        assert sorted(p.name for p in slot_storage.state_dir.iterdir()) == ["thing.json"]

    def test_rejects_path_like_slot_names(self, slot_storage):
        with pytest.raises(ValueError):
            slot_storage.get("../escape")

    def test_state_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EXPENSE_UI_STATE_DIR", str(tmp_path / "from-env"))
        assert FileSlotStorage().state_dir == (tmp_path / "from-env").resolve()


class TestPendingOperationStore:
    def test_save_then_load_for_same_owner(self, store):
        saved = store.save("user-a", DINNER, "key-1")
        loaded = store.load("user-a")

        assert loaded == saved
        assert loaded.payload == DINNER
        assert loaded.idempotency_key == "key-1"
        assert loaded.owner_scope == "user-a"

    def test_request_body_carries_key(self, store):
        pending = store.save("user-a", DINNER, "key-1")
        assert pending.request_body() == {
            "amount": "199.5",
            "category": "Food",
            "description": "Dinner",
            "date": "2026-02-18",
            "idempotency_key": "key-1",
        }

    def test_new_submission_supersedes_old(self, store):
        store.save("user-a", DINNER, "key-1")
        store.save("user-a", TAXI, "key-2")

        loaded = store.load("user-a")
        assert loaded.idempotency_key == "key-2"
        assert loaded.payload == TAXI

    def test_survives_restart(self, store, slot_storage):
        store.save("user-a", DINNER, "key-1")

        restarted = PendingOperationStore(FileSlotStorage(slot_storage.state_dir))
        assert restarted.load("user-a").idempotency_key == "key-1"

    def test_foreign_record_is_absent_and_purged(self, store, slot_storage):
        store.save("user-a", DINNER, "key-1")

        assert store.load("user-b") is None
        assert slot_storage.get(PENDING_SLOT) is None
        # Purged for good: the original owner no longer sees it either
        assert store.load("user-a") is None

    def test_record_without_owner_is_purged(self, store, slot_storage):
        record = {**DINNER.to_dict(), "idempotency_key": "key-1"}
        slot_storage.set(PENDING_SLOT, json.dumps(record))

        assert store.load("user-a") is None
        assert slot_storage.get(PENDING_SLOT) is None

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "{not json",
            "[]",
            json.dumps({"owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "amount": "abc", "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "amount": "-1", "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "date": "2026-02-30", "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "idempotency_key": "", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "idempotency_key": None, "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "idempotency_key": "   ", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "category": None, "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "description": " ", "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "amount": None, "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "amount": "0.004", "idempotency_key": "k", "owner_scope": "user-a"}),
            json.dumps({**DINNER.to_dict(), "idempotency_key": "k", "owner_scope": None}),
        ],
    )
    def test_corrupted_record_is_absent_and_purged(self, store, slot_storage, raw):
        slot_storage.set(PENDING_SLOT, raw)

        assert store.load("user-a") is None
        assert slot_storage.get(PENDING_SLOT) is None

    def test_clear(self, store):
        store.save("user-a", DINNER, "key-1")
        store.clear()
        assert store.load("user-a") is None


class TestAuthSessionStore:
    def test_round_trip(self, slot_storage):
        sessions = AuthSessionStore(slot_storage)
        sessions.save({"id": "user-a", "name": "Asha", "email": "a@example.com", "token": "t"})
        assert sessions.load()["id"] == "user-a"

    def test_session_without_token_is_purged(self, slot_storage):
        sessions = AuthSessionStore(slot_storage)
        sessions.save({"id": "user-a"})
        assert sessions.load() is None
        assert slot_storage.get("auth") is None

    def test_corrupted_session_is_purged(self, slot_storage):
        slot_storage.set("auth", "{oops")
        assert AuthSessionStore(slot_storage).load() is None
        assert slot_storage.get("auth") is None
