# Version History
# v1.0 - SQLite helpers for push subscriptions with soft-delete lifecycle.
# v1.1 - Mission completions for the world map.

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from errors import RepositoryUnavailable

DB_PATH = os.getenv("KINDSPREAD_DB_PATH", os.path.join(os.path.dirname(__file__), "kindspread.db"))


@dataclass(frozen=True)
class Subscription:
    endpoint: str
    client_public_key: str
    auth_secret: str
    active: bool = True


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS push_subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                endpoint TEXT UNIQUE NOT NULL,
                p256dh TEXT NOT NULL,
                auth TEXT NOT NULL,
                created_at TEXT NOT NULL,
                last_sent_at TEXT,
                active INTEGER NOT NULL DEFAULT 1
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_active_subscriptions ON push_subscriptions(active)"
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS mission_completions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mission_text TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                city TEXT,
                country TEXT,
                completed_at TEXT NOT NULL DEFAULT (datetime('now')),
                anonymous_id TEXT
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_completions_date ON mission_completions(completed_at)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_completions_location ON mission_completions(latitude, longitude)"
        )
        conn.commit()


def upsert_subscription(endpoint: str, p256dh: str, auth: str) -> None:
    # Re-subscribing with a known endpoint rotates its keys and revives a retired row.
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO push_subscriptions (endpoint, p256dh, auth, created_at, active)
            VALUES (?, ?, ?, ?, 1)
            ON CONFLICT(endpoint) DO UPDATE SET
                p256dh=excluded.p256dh,
                auth=excluded.auth,
                active=1
            """,
            (endpoint, p256dh, auth, _now_iso()),
        )
        conn.commit()


def list_active_subscriptions() -> list[Subscription]:
    try:
        with _connect() as conn:
            rows = conn.execute(
                "SELECT endpoint, p256dh, auth FROM push_subscriptions WHERE active = 1"
            ).fetchall()
    except sqlite3.Error as exc:
        raise RepositoryUnavailable(f"Unable to list active subscriptions: {exc}") from exc

    return [
        Subscription(endpoint=row["endpoint"], client_public_key=row["p256dh"], auth_secret=row["auth"])
        for row in rows
    ]


def get_subscription(endpoint: str) -> Subscription | None:
    with _connect() as conn:
        row = conn.execute(
            "SELECT endpoint, p256dh, auth, active FROM push_subscriptions WHERE endpoint = ?",
            (endpoint,),
        ).fetchone()

    if row is None:
        return None
    return Subscription(
        endpoint=row["endpoint"],
        client_public_key=row["p256dh"],
        auth_secret=row["auth"],
        active=bool(row["active"]),
    )


def deactivate_subscription(endpoint: str) -> bool:
    with _connect() as conn:
        cur = conn.execute(
            "UPDATE push_subscriptions SET active = 0 WHERE endpoint = ? AND active = 1",
            (endpoint,),
        )
        conn.commit()
        return cur.rowcount > 0


def mark_sent(endpoints: Iterable[str]) -> None:
    sent_at = _now_iso()
    with _connect() as conn:
        conn.executemany(
            "UPDATE push_subscriptions SET last_sent_at = ? WHERE endpoint = ?",
            [(sent_at, endpoint) for endpoint in endpoints],
        )
        conn.commit()


def insert_completion(
    mission_text: str,
    latitude: float,
    longitude: float,
    city: str | None = None,
    country: str | None = None,
    anonymous_id: str | None = None,
) -> int:
    with _connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO mission_completions (mission_text, latitude, longitude, city, country, anonymous_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (mission_text, latitude, longitude, city, country, anonymous_id),
        )
        conn.commit()
        return cur.lastrowid


def has_completion_today(anonymous_id: str) -> bool:
    # completed_at is stored in UTC by SQLite's datetime('now').
    with _connect() as conn:
        row = conn.execute(
            """
            SELECT id FROM mission_completions
            WHERE anonymous_id = ? AND date(completed_at) = date('now')
            LIMIT 1
            """,
            (anonymous_id,),
        ).fetchone()
    return row is not None


def list_recent_completions(hours: int, limit: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            """
            SELECT id, mission_text, latitude, longitude, city, country, completed_at
            FROM mission_completions
            WHERE completed_at >= datetime('now', ?)
            ORDER BY completed_at DESC, id DESC
            LIMIT ?
            """,
            (f"-{int(hours)} hours", limit),
        ).fetchall()

    return [dict(row) for row in rows]


class SqliteSubscriptionRepository:
    def list_active(self) -> list[Subscription]:
        return list_active_subscriptions()

    def deactivate(self, endpoint: str) -> bool:
        return deactivate_subscription(endpoint)

    def mark_sent(self, endpoints: Iterable[str]) -> None:
        mark_sent(endpoints)
