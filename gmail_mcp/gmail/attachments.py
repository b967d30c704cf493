"""Writing downloaded attachments to disk behind the path guard."""

import logging
import os
from pathlib import Path

from gmail_mcp.errors import InvalidInput
from gmail_mcp.security.path_guard import PathGuard, resolve_path

logger = logging.getLogger(__name__)


def safe_filename(filename: str) -> str:
    """Reduce an attacker-supplied filename to its final path component."""
    name = Path(filename.replace("\\", "/")).name
    if not name or name in (".", ".."):
        raise InvalidInput(f"Invalid attachment filename: {filename!r}")
    return name


def save_attachment(data: bytes, filename: str, save_dir: str | Path, guard: PathGuard) -> Path:
    """Write ``data`` as ``save_dir/filename`` and return the full path.

    The filename loses any directory components and the final destination is
    checked by the path guard before the directory is created or anything
    is written.

    Raises:
        InvalidInput: the filename is empty or only dots.
        SecurityBlocked: the destination is a sensitive location.
    """
    name = safe_filename(filename)
    directory = resolve_path(save_dir)
    target = guard.ensure_allowed(os.path.join(directory, name), purpose="Download")

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    logger.info("Saved attachment %s (%d bytes)", target, len(data))
    return target
