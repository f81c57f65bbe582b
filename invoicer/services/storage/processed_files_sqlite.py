"""
SQLite-based processed-file tracking.

Remembers which source files were already written to which spreadsheet, so
repeated runs over the same source sheet only parse new links.
"""

import sqlite3
from datetime import datetime, UTC
from typing import Optional

from .tracker_base import STATUSES, ProcessedFileTrackerBase

_COLUMNS = "file_id, file_name, file_url, sheet_id, status, processed_at, error"


class SQLiteProcessedFileTracker(ProcessedFileTrackerBase):
    """
    SQLite-backed processed-file tracker with persistent storage.

    Features:
    - Persistent storage across process restarts
    - One row per (file_id, sheet_id)
    - Status-based filtering for failed-file reports
    """

    def __init__(self, db_path: str = "processed_files.db"):
        """
        Initialize tracker with database path.

        Args:
            db_path: Path to SQLite database file (default: processed_files.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create processed_files table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS processed_files (
                file_id TEXT NOT NULL,
                sheet_id TEXT NOT NULL,
                file_name TEXT NOT NULL DEFAULT '',
                file_url TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'processing',
                processed_at TEXT NOT NULL,
                error TEXT,
                PRIMARY KEY (file_id, sheet_id),
                CHECK (status IN ('processing', 'completed', 'failed'))
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_processed_status
            ON processed_files(status)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict:
        return {
            "file_id": row["file_id"],
            "file_name": row["file_name"],
            "file_url": row["file_url"],
            "sheet_id": row["sheet_id"],
            "status": row["status"],
            "processed_at": row["processed_at"],
            "error": row["error"],
        }

    def is_processed(self, file_id: str, sheet_id: str) -> bool:
        entry = self.get(file_id, sheet_id)
        return entry is not None and entry["status"] == "completed"

    def mark_processing(self, file_id: str, file_name: str, file_url: str, sheet_id: str) -> None:
        """
        Insert or reset an entry as 'processing'.

        A previously failed or completed entry is overwritten, so a file can
        be retried by a later run.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO processed_files (file_id, sheet_id, file_name, file_url, status, processed_at, error)
            VALUES (?, ?, ?, ?, 'processing', ?, NULL)
            ON CONFLICT(file_id, sheet_id) DO UPDATE SET
                file_name = excluded.file_name,
                file_url = excluded.file_url,
                status = 'processing',
                processed_at = excluded.processed_at,
                error = NULL
        """, (file_id, sheet_id, file_name, file_url, datetime.now(UTC).isoformat()))

        conn.commit()
        conn.close()

    def _set_status(self, file_id: str, sheet_id: str, status: str, error: Optional[str] = None) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            UPDATE processed_files
            SET status = ?,
                processed_at = ?,
                error = ?
            WHERE file_id = ? AND sheet_id = ?
        """, (status, datetime.now(UTC).isoformat(), error, file_id, sheet_id))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return rows_affected > 0

    def mark_completed(self, file_id: str, sheet_id: str) -> bool:
        return self._set_status(file_id, sheet_id, "completed")

    def mark_failed(self, file_id: str, sheet_id: str, error: str) -> bool:
        return self._set_status(file_id, sheet_id, "failed", error)

    def get(self, file_id: str, sheet_id: str) -> Optional[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(f"""
            SELECT {_COLUMNS}
            FROM processed_files
            WHERE file_id = ? AND sheet_id = ?
        """, (file_id, sheet_id))

        row = cursor.fetchone()
        conn.close()

        return self._row_to_dict(row) if row is not None else None

    def list_all(self) -> list:
        """
        List all tracked files (most recent status change first).

        Returns:
            List of entry dictionaries
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(f"""
            SELECT {_COLUMNS}
            FROM processed_files
            ORDER BY processed_at DESC
        """)

        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_dict(row) for row in rows]

    def query_by_status(self, status: str) -> list:
        """
        Query tracked files by status.

        Args:
            status: One of 'processing', 'completed', 'failed'

        Returns:
            List of entry dictionaries matching the status
        """
        if status not in STATUSES:
            raise ValueError(f"Unknown status: {status}")

        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(f"""
            SELECT {_COLUMNS}
            FROM processed_files
            WHERE status = ?
            ORDER BY processed_at DESC
        """, (status,))

        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_dict(row) for row in rows]
