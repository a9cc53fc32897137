"""
File store infrastructure for hgresource.

Provides atomic writes for secrets and client configuration:
- Write to a temp file in the target directory, then rename
- Explicit permissions on both the file and a newly created directory
"""

import os
import tempfile
from pathlib import Path
from typing import Union
import logging

logger = logging.getLogger(__name__)


def atomic_save(
    path: Union[str, Path],
    content: Union[str, bytes],
    file_mode: int = 0o600,
    dir_mode: int = 0o700,
) -> Path:
    """
    Write `content` to `path` atomically.

    Args:
        path: Destination file
        content: Text or bytes to write
        file_mode: Permissions of the written file
        dir_mode: Permissions of the parent directory if it has to be created

    Returns:
        The destination path

    Raises:
        OSError: If the directory, temp file or rename fails
    """
    path = Path(path)
    parent = path.parent

    if not parent.exists():
        parent.mkdir(mode=dir_mode, parents=True, exist_ok=True)
        # mkdir is subject to the umask
        os.chmod(parent, dir_mode)

    data = content.encode('utf-8') if isinstance(content, str) else content

    # Write to temp file in same directory
    fd, temp_path = tempfile.mkstemp(dir=parent, prefix=f".{path.name}.", suffix=".tmp")

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, file_mode)

        # Atomic rename
        os.replace(temp_path, path)

    except Exception:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    logger.debug(f"Wrote {path}")
    return path
