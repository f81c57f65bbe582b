from .processed_files import InMemoryProcessedFileTracker
from .processed_files_sqlite import SQLiteProcessedFileTracker
from .tracker_base import ProcessedFileTrackerBase

__all__ = [
    "InMemoryProcessedFileTracker",
    "ProcessedFileTrackerBase",
    "SQLiteProcessedFileTracker",
]
