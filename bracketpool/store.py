"""
bracketpool/store.py - Key-value persistence for competition state.

State is keyed by (owner, competition_id) and stored as a JSON document.
Competition ids are globally unique so the router can resolve an id to its
owner and variant without knowing the owner up front.

MemoryStore is for tests; SqliteStore backs the CLI (or :memory:).
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Protocol


class CompetitionStore(Protocol):
    def next_competition_id(self) -> int: ...

    def lookup(self, competition_id: int) -> tuple[str, str] | None: ...

    def load(self, owner: str, competition_id: int) -> dict[str, Any] | None: ...

    def save(self, owner: str, competition_id: int, variant: str, data: dict[str, Any]) -> None: ...

    def list_competitions(self, owner: str | None = None) -> list[dict[str, Any]]: ...


class MemoryStore:
    """Dict-backed store. Documents are copied on the way in and out."""

    def __init__(self):
        self._docs: dict[tuple[str, int], str] = {}
        self._index: dict[int, tuple[str, str]] = {}
        self._last_id = 0

    def next_competition_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def lookup(self, competition_id: int) -> tuple[str, str] | None:
        return self._index.get(competition_id)

    def load(self, owner: str, competition_id: int) -> dict[str, Any] | None:
        raw = self._docs.get((owner, competition_id))
        return json.loads(raw) if raw is not None else None

    def save(self, owner: str, competition_id: int, variant: str, data: dict[str, Any]) -> None:
        self._docs[(owner, competition_id)] = json.dumps(data)
        self._index[competition_id] = (owner, variant)

    def list_competitions(self, owner: str | None = None) -> list[dict[str, Any]]:
        return [
            {"competition_id": cid, "owner": o, "variant": v}
            for cid, (o, v) in sorted(self._index.items())
            if owner is None or o == owner
        ]


class SqliteStore:
    """Thin wrapper around SQLite. One row per competition."""

    def __init__(self, path: str = "competitions.db"):
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS competitions (
                competition_id INTEGER PRIMARY KEY,
                owner TEXT NOT NULL,
                variant TEXT NOT NULL,
                state TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_competitions_owner
                ON competitions (owner);
            """
        )

    def next_competition_id(self) -> int:
        row = self._conn.execute(
            "SELECT COALESCE(MAX(competition_id), 0) + 1 FROM competitions"
        ).fetchone()
        return row[0]

    def lookup(self, competition_id: int) -> tuple[str, str] | None:
        row = self._conn.execute(
            "SELECT owner, variant FROM competitions WHERE competition_id = ?",
            (competition_id,),
        ).fetchone()
        return (row["owner"], row["variant"]) if row else None

    def load(self, owner: str, competition_id: int) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT state FROM competitions WHERE owner = ? AND competition_id = ?",
            (owner, competition_id),
        ).fetchone()
        return json.loads(row["state"]) if row else None

    def save(self, owner: str, competition_id: int, variant: str, data: dict[str, Any]) -> None:
        now = _now()
        self._conn.execute(
            "INSERT INTO competitions (competition_id, owner, variant, state, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(competition_id) DO UPDATE SET state = excluded.state, "
            "updated_at = excluded.updated_at",
            (competition_id, owner, variant, json.dumps(data), now, now),
        )
        self._conn.commit()

    def list_competitions(self, owner: str | None = None) -> list[dict[str, Any]]:
        if owner is None:
            rows = self._conn.execute(
                "SELECT competition_id, owner, variant FROM competitions ORDER BY competition_id"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT competition_id, owner, variant FROM competitions "
                "WHERE owner = ? ORDER BY competition_id",
                (owner,),
            ).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        self._conn.close()


def _now() -> str:
    """ISO timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()
