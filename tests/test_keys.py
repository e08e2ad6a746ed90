from __future__ import annotations

import uuid

from expense_tracker.frontend import keys


def test_new_key_is_unique():
    issued = {keys.new_key() for _ in range(100)}
    assert len(issued) == 100


def test_new_key_falls_back_without_random_source(monkeypatch):
    def no_entropy():
        raise NotImplementedError

    monkeypatch.setattr(uuid, "uuid4", no_entropy)

    first, second = keys.new_key(), keys.new_key()
    assert first.startswith("expense-")
    assert first != second
