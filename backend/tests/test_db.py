from __future__ import annotations

import sqlite3

import pytest

from errors import RepositoryUnavailable


def test_list_active_returns_only_active_rows(temp_db):
    temp_db.upsert_subscription("https://push.example.net/a", "p256dh-a", "auth-a")
    temp_db.upsert_subscription("https://push.example.net/b", "p256dh-b", "auth-b")
    temp_db.deactivate_subscription("https://push.example.net/b")

    active = temp_db.SqliteSubscriptionRepository().list_active()

    assert [item.endpoint for item in active] == ["https://push.example.net/a"]
    assert active[0].client_public_key == "p256dh-a"
    assert active[0].auth_secret == "auth-a"
    assert active[0].active is True


def test_deactivate_is_soft_and_idempotent(temp_db):
    repository = temp_db.SqliteSubscriptionRepository()
    temp_db.upsert_subscription("https://push.example.net/a", "p256dh-a", "auth-a")

    assert repository.deactivate("https://push.example.net/a") is True
    assert repository.deactivate("https://push.example.net/a") is False
    assert repository.deactivate("https://push.example.net/missing") is False

    row = temp_db.get_subscription("https://push.example.net/a")
    assert row is not None
    assert row.active is False


def test_resubscribe_revives_retired_endpoint_with_new_keys(temp_db):
    temp_db.upsert_subscription("https://push.example.net/a", "old-p256dh", "old-auth")
    temp_db.deactivate_subscription("https://push.example.net/a")
    temp_db.upsert_subscription("https://push.example.net/a", "new-p256dh", "new-auth")

    row = temp_db.get_subscription("https://push.example.net/a")
    assert row.active is True
    assert row.client_public_key == "new-p256dh"
    assert row.auth_secret == "new-auth"

    with sqlite3.connect(temp_db.DB_PATH) as conn:
        count = conn.execute("SELECT COUNT(*) FROM push_subscriptions").fetchone()[0]
    assert count == 1


def test_mark_sent_records_timestamp(temp_db):
    temp_db.upsert_subscription("https://push.example.net/a", "p256dh-a", "auth-a")
    temp_db.SqliteSubscriptionRepository().mark_sent(["https://push.example.net/a"])

    with sqlite3.connect(temp_db.DB_PATH) as conn:
        last_sent_at = conn.execute("SELECT last_sent_at FROM push_subscriptions").fetchone()[0]
    assert last_sent_at is not None and last_sent_at.endswith("Z")


def test_list_active_wraps_database_errors(tmp_path, monkeypatch):
    import db

    # Uninitialised database: the table does not exist.
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "empty.db"))
    with pytest.raises(RepositoryUnavailable):
        db.list_active_subscriptions()
