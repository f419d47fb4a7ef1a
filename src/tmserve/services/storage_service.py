"""Service layer – scratch storage for uploaded images.

Every upload is written to its own file in the scratch directory and must be
removed again once the request is done, so the directory stays empty under
correct operation.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

from fastapi import UploadFile

from src.tmserve.errors import UploadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


async def save_upload(file: UploadFile, directory: Path, max_size: int) -> Path:
    """Write *file* to a uniquely named scratch file and return its path.

    Oversized uploads are rejected before anything touches the disk.
    """
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > max_size:
            raise UploadTooLarge(
                f"File too large (over {max_size} bytes). Maximum size: {max_size} bytes.",
            )
        chunks.append(chunk)
    content = b"".join(chunks)

    suffix = Path(file.filename or "").suffix.lower()
    file_path = directory / f"{uuid.uuid4()}{suffix}"
    try:
        await asyncio.to_thread(file_path.write_bytes, content)
    except OSError:
        discard_upload(file_path)
        raise
    return file_path


def discard_upload(path: Path) -> None:
    """Delete a scratch file; a failure is logged, not raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to delete %s: %s", path.name, exc)


def _is_scratch_file(file: Path) -> bool:
    """Scratch files are named by ``save_upload``: a uuid4 plus the suffix."""
    if not file.is_file():
        return False
    try:
        uuid.UUID(file.stem)
    except ValueError:
        return False
    return True


def purge_uploads(directory: Path) -> int:
    """Delete scratch files left behind in *directory* (e.g. by a crashed process).

    Files not named by ``save_upload`` are left alone.
    """
    directory.mkdir(parents=True, exist_ok=True)
    removed = 0
    for file in directory.iterdir():
        if not _is_scratch_file(file):
            continue
        try:
            file.unlink()
            removed += 1
            logger.info("🗑️  Deleted stale upload: %s", file.name)
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", file.name, exc)
    return removed
