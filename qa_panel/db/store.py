from __future__ import annotations

from pathlib import Path

from qa_panel.core.logger import get_logger
from qa_panel.db.database import create_schema, get_connection

logger = get_logger(__name__)

TEST_RUNS_KEY = "testRuns"
TEST_RESULTS_KEY = "testResults"


class KeyValueStore:
    """Durable string key/value storage backed by the ``kv_store`` table.

    Each call opens and closes its own connection, so the store can be shared
    by timer callbacks and request handlers alike.
    """

    def __init__(self, db_path: Path | None = None):
        self._db_path = db_path
        create_schema(db_path)

    @property
    def db_path(self) -> Path | None:
        return self._db_path

    def get_item(self, key: str) -> str | None:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key=?", (key,)).fetchone()
            if not row:
                return None
            return str(row["value"])
        finally:
            conn.close()

    def set_item(self, key: str, value: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
            logger.debug("db.kv.set", key=key, size=len(value))
        finally:
            conn.close()

    def remove_item(self, key: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute("DELETE FROM kv_store WHERE key=?", (key,))
            conn.commit()
            logger.info("db.kv.remove", key=key)
        finally:
            conn.close()

    def keys(self) -> list[str]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
            return [str(row["key"]) for row in rows]
        finally:
            conn.close()
