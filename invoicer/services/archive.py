import io
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath

from loguru import logger

from .errors import FileSourceError

VALID_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg"}


@dataclass
class SourceFile:
    content: bytes
    filename: str
    mime_type: str = "application/octet-stream"


def is_zip(filename: str) -> bool:
    return filename.lower().endswith(".zip")


def extract_zip(content: bytes) -> list[tuple[str, bytes]]:
    """
    Return ``(basename, bytes)`` for every PDF/image member of a zip archive.

    Directory entries, other file types and macOS resource forks are skipped.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as e:
        raise FileSourceError(f"Not a valid zip archive: {e}") from e

    files = []
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            path = PurePosixPath(info.filename)
            if "__MACOSX" in path.parts or path.name.startswith("._"):
                continue
            if path.suffix.lower() not in VALID_EXTENSIONS:
                continue
            files.append((path.name, archive.read(info)))

    logger.info("Extracted zip archive", members=len(files))
    return files


def expand_source_file(source: SourceFile) -> list[SourceFile]:
    """A zip becomes its document members; anything else is passed through."""
    if not is_zip(source.filename):
        return [source]
    return [SourceFile(content=data, filename=name) for name, data in extract_zip(source.content)]
