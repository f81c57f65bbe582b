"""
Abstract base class for processed-file tracking.

A run consults the tracker before downloading a source file so that files
already written to a given spreadsheet are not parsed and billed twice.
"""

from abc import ABC, abstractmethod
from typing import Optional

STATUSES = ("processing", "completed", "failed")


class ProcessedFileTrackerBase(ABC):
    """
    Abstract base class for processed-file tracking.

    Entries are keyed by (file id, sheet id): the same Drive file may be
    processed once per target spreadsheet.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    """

    @abstractmethod
    def is_processed(self, file_id: str, sheet_id: str) -> bool:
        """
        Check whether a file has completed processing for a sheet.

        Args:
            file_id: Drive file id
            sheet_id: Target spreadsheet id

        Returns:
            True only if the entry exists with status 'completed'
        """
        pass

    @abstractmethod
    def mark_processing(self, file_id: str, file_name: str, file_url: str, sheet_id: str) -> None:
        """
        Create or reset the entry for a file as 'processing'.

        Args:
            file_id: Drive file id
            file_name: Display name (may be empty before download)
            file_url: Source link the file id came from
            sheet_id: Target spreadsheet id
        """
        pass

    @abstractmethod
    def mark_completed(self, file_id: str, sheet_id: str) -> bool:
        """
        Mark a file as completed.

        Returns:
            True if successful, False if the entry was not found
        """
        pass

    @abstractmethod
    def mark_failed(self, file_id: str, sheet_id: str, error: str) -> bool:
        """
        Mark a file as failed and record the error message.

        Returns:
            True if successful, False if the entry was not found
        """
        pass

    @abstractmethod
    def get(self, file_id: str, sheet_id: str) -> Optional[dict]:
        """
        Get the tracking entry for a file.

        Returns:
            Dictionary with keys:
                - file_id, file_name, file_url, sheet_id
                - status: One of 'processing', 'completed', 'failed'
                - processed_at: ISO timestamp of the last status change
                - error: Error message or None
            Returns None if not found.
        """
        pass

    @abstractmethod
    def list_all(self) -> list:
        """
        List all tracked files.

        Returns:
            List of entry dictionaries (same format as get)
        """
        pass
