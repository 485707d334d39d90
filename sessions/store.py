"""
sessions/store.py -- SQLite-backed store of live access/refresh sessions.

Each row maps a session id (embedded in an access or refresh token) to the
token value and an absolute expiry. Existence means the session is live;
absence means it expired, was revoked, or never existed -- callers treat all
three the same way.

Expiry is enforced on read: get() ignores and deletes rows whose expires_at
has passed, so correctness never depends on a cleanup job. purge_expired()
only trims the table and is called periodically by the API lifespan.

Every operation runs under a lock so put/get/delete are atomic even though
the single connection is shared across FastAPI's worker threads. sqlite3
errors surface as core.errors.InternalError.

Usage:
    sessions = SessionStore()
    sessions.put(session_id, token, ttl_seconds=720)
    sessions.get(session_id)        # token or None
    sessions.delete(session_id)     # revoke
    sessions.purge_expired()        # call periodically to trim old rows

Layer rule: stdlib + core/ only. No imports from api/ or auth/.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Optional, Union

from core.errors import InternalError

logger = logging.getLogger("keyward.sessions")

_DEFAULT_DB = Path(__file__).parent / "keyward_sessions.db"

_DDL = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id  TEXT PRIMARY KEY,
    token       TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class SessionStore:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB) -> None:
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    @contextmanager
    def _locked(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                # a closed connection has nothing to roll back
                with suppress(sqlite3.Error):
                    self._conn.rollback()
                logger.error("Session store %s failed: %s", action, exc)
                raise InternalError(detail=f"session store {action} failed: {exc}") from exc

    def put(self, session_id: str, token: str, ttl_seconds: int) -> None:
        """Record a live session, replacing any existing entry for session_id."""
        with self._locked("put") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sessions (session_id, token, expires_at) VALUES (?, ?, ?)",
                (session_id, token, time.time() + ttl_seconds),
            )
            conn.commit()

    def get(self, session_id: str) -> Optional[str]:
        """Return the token for session_id if it exists and hasn't expired."""
        with self._locked("get") as conn:
            row = conn.execute(
                "SELECT token, expires_at FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            if row is None:
                return None
            token, expires_at = row
            if time.time() >= expires_at:
                self._delete(conn, session_id)
                return None
            return token

    def delete(self, session_id: str) -> bool:
        """Revoke a session. Returns True if a live entry was removed."""
        with self._locked("delete") as conn:
            row = conn.execute(
                "SELECT expires_at FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            self._delete(conn, session_id)
        return row is not None and time.time() < row[0]

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._locked("purge") as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (time.time(),))
            conn.commit()
        if cursor.rowcount:
            logger.info("Purged %d expired sessions", cursor.rowcount)
        return cursor.rowcount

    @staticmethod
    def _delete(conn: sqlite3.Connection, session_id: str) -> None:
        conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        conn.commit()

    def close(self) -> None:
        self._conn.close()
