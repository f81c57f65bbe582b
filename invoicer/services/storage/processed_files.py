"""
In-memory processed-file tracking (for tests and one-off runs).
Use the SQLite tracker when runs need to remember files between restarts.
"""
from datetime import datetime, UTC
from typing import Dict, Optional, Tuple

from .tracker_base import ProcessedFileTrackerBase


class InMemoryProcessedFileTracker(ProcessedFileTrackerBase):
    def __init__(self):
        self._files: Dict[Tuple[str, str], dict] = {}

    def is_processed(self, file_id: str, sheet_id: str) -> bool:
        entry = self._files.get((file_id, sheet_id))
        return entry is not None and entry["status"] == "completed"

    def mark_processing(self, file_id: str, file_name: str, file_url: str, sheet_id: str) -> None:
        self._files[(file_id, sheet_id)] = {
            "file_id": file_id,
            "file_name": file_name,
            "file_url": file_url,
            "sheet_id": sheet_id,
            "status": "processing",
            "processed_at": datetime.now(UTC).isoformat(),
            "error": None,
        }

    def _set_status(self, file_id: str, sheet_id: str, status: str, error: Optional[str] = None) -> bool:
        entry = self._files.get((file_id, sheet_id))
        if entry is None:
            return False
        entry["status"] = status
        entry["processed_at"] = datetime.now(UTC).isoformat()
        entry["error"] = error
        return True

    def mark_completed(self, file_id: str, sheet_id: str) -> bool:
        return self._set_status(file_id, sheet_id, "completed")

    def mark_failed(self, file_id: str, sheet_id: str, error: str) -> bool:
        return self._set_status(file_id, sheet_id, "failed", error)

    def get(self, file_id: str, sheet_id: str) -> Optional[dict]:
        return self._files.get((file_id, sheet_id))

    def list_all(self) -> list:
        return list(self._files.values())
