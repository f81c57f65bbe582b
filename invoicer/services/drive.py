import io
import re

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload
from loguru import logger

from .archive import SourceFile
from .errors import FileSourceError

DRIVE_FILE_ID_RE = re.compile(r"https://(?:drive|docs)\.google\.com(?:/.*|)/d/([0-9a-zA-Z\-_]+)(?:/.*|)")
DRIVE_OPEN_ID_RE = re.compile(r"https://drive\.google\.com/.*[?&]id=([0-9a-zA-Z\-_]+)")


def extract_drive_file_id(link: str) -> str | None:
    """Pull the file id out of a Drive/Docs sharing link, or None for anything else."""
    match = DRIVE_FILE_ID_RE.search(link) or DRIVE_OPEN_ID_RE.search(link)
    return match.group(1) if match else None


class DriveFileSource:
    """Downloads source documents from Google Drive (v3 API)."""

    def __init__(self, credentials=None, service=None):
        self._service = service or build("drive", "v3", credentials=credentials, cache_discovery=False)

    def download(self, file_id: str) -> SourceFile:
        files = self._service.files()
        try:
            meta = files.get(fileId=file_id, fields="id,name,mimeType", supportsAllDrives=True).execute()
            buffer = io.BytesIO()
            downloader = MediaIoBaseDownload(buffer, files.get_media(fileId=file_id, supportsAllDrives=True))
            done = False
            while not done:
                _, done = downloader.next_chunk()
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            if status == 404:
                logger.error("Drive file not found, check the file id and sharing", file_id=file_id)
            elif status in (401, 403):
                logger.error("No access to Drive file", file_id=file_id, status=status)
            raise FileSourceError(f"Failed to download Drive file {file_id}: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise FileSourceError(f"Failed to download Drive file {file_id}: {e}") from e

        content = buffer.getvalue()
        filename = meta.get("name") or file_id
        mime_type = meta.get("mimeType") or "application/octet-stream"
        logger.info("Downloaded Drive file", file_id=file_id, filename=filename, size_bytes=len(content))
        return SourceFile(content=content, filename=filename, mime_type=mime_type)
