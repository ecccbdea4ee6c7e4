"""Persistence gateway for user stats, settings and session history.

The engine only sees :class:`StorageGateway`. Stores keep each record as JSON
text under a fixed key. Reads never raise: a missing or unreadable record
yields the defaults. Writes are best-effort and only log on failure.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Protocol

from .models import SESSION_HISTORY_CAP, GameSession, GameSettings, UserStats

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DB_PATH_ENV = "ARITHMETIC_TRAINER_DB"

USER_STATS_KEY = "arithmetic_practice_user_stats"
GAME_SETTINGS_KEY = "arithmetic_practice_game_settings"
SESSIONS_KEY = "arithmetic_practice_sessions"
ALL_KEYS = (USER_STATS_KEY, GAME_SETTINGS_KEY, SESSIONS_KEY)

_READ_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError, KeyError)
_WRITE_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError)


class StorageGateway(Protocol):
    def get_user_stats(self) -> UserStats:
        ...

    def save_user_stats(self, stats: UserStats) -> None:
        ...

    def get_game_settings(self) -> GameSettings:
        ...

    def save_game_settings(self, settings: GameSettings) -> None:
        ...

    def save_session(self, session: GameSession) -> None:
        ...

    def get_sessions(self) -> list[GameSession]:
        ...

    def clear_all_data(self) -> None:
        ...


def default_user_stats() -> UserStats:
    return UserStats()


def default_game_settings() -> GameSettings:
    return GameSettings()


def _as_dict(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def _as_list(payload: Any) -> list[Any]:
    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON array, got {type(payload).__name__}")
    return payload


class KeyValueStore:
    """Typed gateway on top of three raw text operations supplied by subclasses."""

    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: str, text: str) -> None:
        raise NotImplementedError

    def _delete(self, keys: tuple[str, ...]) -> None:
        raise NotImplementedError

    def get_user_stats(self) -> UserStats:
        try:
            text = self._read(USER_STATS_KEY)
            if text is None:
                return default_user_stats()
            return UserStats.from_dict(_as_dict(json.loads(text)))
        except _READ_ERRORS:
            logger.warning("Error loading user stats; using defaults", exc_info=True)
            return default_user_stats()

    def save_user_stats(self, stats: UserStats) -> None:
        self._save(USER_STATS_KEY, stats.to_dict(), what="user stats")

    def get_game_settings(self) -> GameSettings:
        try:
            text = self._read(GAME_SETTINGS_KEY)
            if text is None:
                return default_game_settings()
            return GameSettings.from_dict(_as_dict(json.loads(text)))
        except _READ_ERRORS:
            logger.warning("Error loading game settings; using defaults", exc_info=True)
            return default_game_settings()

    def save_game_settings(self, settings: GameSettings) -> None:
        self._save(GAME_SETTINGS_KEY, settings.to_dict(), what="game settings")

    def save_session(self, session: GameSession) -> None:
        sessions = [session, *self.get_sessions()][:SESSION_HISTORY_CAP]
        self._save(SESSIONS_KEY, [s.to_dict() for s in sessions], what="session")

    def get_sessions(self) -> list[GameSession]:
        try:
            text = self._read(SESSIONS_KEY)
            if text is None:
                return []
            return [GameSession.from_dict(_as_dict(raw)) for raw in _as_list(json.loads(text))]
        except _READ_ERRORS:
            logger.warning("Error loading sessions; using empty history", exc_info=True)
            return []

    def clear_all_data(self) -> None:
        try:
            self._delete(ALL_KEYS)
        except _WRITE_ERRORS:
            logger.warning("Error clearing data", exc_info=True)

    def _save(self, key: str, payload: Any, *, what: str) -> None:
        try:
            self._write(key, json.dumps(payload))
        except _WRITE_ERRORS:
            logger.warning("Error saving %s", what, exc_info=True)


class MemoryStore(KeyValueStore):
    """In-process store; keeps JSON text so it exercises the same encoding as disk."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def _read(self, key: str) -> str | None:
        return self.data.get(key)

    def _write(self, key: str, text: str) -> None:
        self.data[key] = text

    def _delete(self, keys: tuple[str, ...]) -> None:
        for key in keys:
            self.data.pop(key, None)


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteStore(KeyValueStore):
    """Key-value records in a single sqlite file; a connection is opened per call."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(DB_PATH_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".arithmetic_trainer.sqlite3"

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        return open_db(self._path)

    def _read(self, key: str) -> str | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return None if row is None else str(row[0])

    def _write(self, key: str, text: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO kv(key, value, updated_at_utc) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (key, text, _utc_now_iso()),
                )
        finally:
            conn.close()

    def _delete(self, keys: tuple[str, ...]) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        finally:
            conn.close()
