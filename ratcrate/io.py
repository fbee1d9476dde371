"""Atomic file writing for cache files.

Writes content to a temporary file first, then renames to the final path,
so readers never see a partially written file.
"""

import hashlib
import os
import tempfile
from pathlib import Path

import structlog


logger = structlog.get_logger()


def atomic_write_text(path: Path, content: str) -> int:
    """Write content to file with atomic semantics.

    The temporary file lives in the target directory so the final
    ``os.replace`` never crosses filesystems. Readers see either the
    complete old file or the complete new file.

    Args:
        path: Target file path.
        content: Content to write (encoded as UTF-8).

    Returns:
        Number of bytes written.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content_bytes = content.encode("utf-8")

    fd, temp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content_bytes)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise

    logger.debug(
        "file_written",
        path=str(path),
        bytes=len(content_bytes),
        sha256=hashlib.sha256(content_bytes).hexdigest()[:12],
    )
    return len(content_bytes)
