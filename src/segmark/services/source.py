"""Temporary on-disk copies of input streams for path-based parsers."""

import asyncio
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional

import structlog

logger = structlog.get_logger(__name__)


def _write_temp_file(stream: BinaryIO, suffix: Optional[str]) -> Path:
    fd, name = tempfile.mkstemp(prefix="segmark_", suffix=suffix or "")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            stream.seek(0)
            shutil.copyfileobj(stream, handle)
        stream.seek(0)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


@asynccontextmanager
async def materialize_source(stream: BinaryIO, suffix: Optional[str] = None) -> AsyncIterator[Path]:
    """Write ``stream`` to a temporary file and yield its path.

    The file is always deleted on exit, including on error or cancellation.
    """
    path = await asyncio.to_thread(_write_temp_file, stream, suffix)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to delete temporary file", path=str(path), error=str(e))
