"""
File system helpers for the store.

- ``atomic_write``: persist a file so readers never observe partial content
- ``safe_rmtree``: remove a directory tree, tolerating a missing root
"""

import logging
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Union

from tsstore.core.exceptions import TsStoreError

logger = logging.getLogger(__name__)


class FilesystemError(TsStoreError):
    """Base exception for filesystem operations."""

    pass


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('store-manifest.json', '{"versions": []}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory, so the rename never crosses filesystems
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except BaseException:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def _remove_readonly(func, path, exc):
    """Clear the read-only bit and retry (npm leaves some on Windows)."""
    # onerror passes sys.exc_info(), onexc the exception itself
    error = exc[1] if isinstance(exc, tuple) else exc

    if isinstance(error, FileNotFoundError):
        # Removed concurrently, e.g. by another prune
        return
    if not isinstance(error, PermissionError):
        raise error

    os.chmod(path, stat.S_IWRITE)
    func(path)


def safe_rmtree(path: Union[str, Path]) -> bool:
    """
    Remove a directory tree recursively.

    Args:
        path: Directory to remove

    Returns:
        True if something was removed, False if the path did not exist

    Raises:
        FilesystemError: If the path is not a directory or deletion fails
    """
    path = Path(path).resolve()

    if not path.exists():
        logger.debug(f"Nothing to remove: {path}")
        return False

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_remove_readonly)
        else:
            shutil.rmtree(path, onerror=_remove_readonly)
    except FileNotFoundError:
        # Another process removed it concurrently
        pass
    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e

    logger.debug(f"Removed directory tree: {path}")
    return True


__all__ = ["FilesystemError", "atomic_write", "safe_rmtree"]
