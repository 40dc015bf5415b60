"""
Cross-process locking for store installations.

A ``Lock`` claims an installation path by exclusively creating a sibling
indicator file (``<path>__lock__``). Creation goes through
``filelock.SoftFileLock``, which opens the indicator with ``O_CREAT | O_EXCL``,
so two processes can never both believe they own the same path.

The indicator is advisory. Parties that only need to know whether someone
else is installing poll for it with ``Lock.is_locked`` before deciding to
claim the path themselves. An indicator older than the longest
possible installation belongs to a holder that died without releasing it;
``Lock.is_locked`` removes such an indicator when given ``stale_after``.

Usage:
    from tsstore.core.locking import Lock

    if not Lock.is_locked(path, timeout=30):
        with Lock(path):
            install_into(path)
"""

import atexit
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from filelock import SoftFileLock, Timeout

from tsstore.core.cancellation import CancellationToken, is_cancelled
from tsstore.core.exceptions import LockContentionError, LockTimeoutError

logger = logging.getLogger(__name__)

LOCK_SUFFIX = "__lock__"


def get_lock_path(target_path: Union[str, Path]) -> Path:
    """Return the lock indicator path for an installation path."""
    target_path = Path(target_path)
    return target_path.with_name(f"{target_path.name}{LOCK_SUFFIX}")


def _remove_if_stale(lock_path: Path, max_age: float) -> bool:
    """
    Remove an indicator left behind by a holder that died.

    Returns:
        True if the indicator is gone, either removed here or released
        concurrently
    """
    try:
        age = time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return True

    if age <= max_age:
        return False

    try:
        lock_path.unlink()
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.debug(f"Could not remove stale lock {lock_path}: {e}")
        return False

    logger.info(f"Removed stale lock file ({age:.0f}s old): {lock_path}")
    return True


class Lock:
    """
    Exclusive, path-scoped claim held by a single owner.

    Construction either claims the path or raises ``LockContentionError``;
    it never waits and never overwrites an existing claim. The owner must
    call ``release()`` (or leave the ``with`` block) to unlock the path.
    A claim still held when the interpreter exits is dropped by an exit hook.

    Attributes:
        target_path: Path being protected
        lock_path: Indicator file whose existence means "locked"
    """

    def __init__(self, target_path: Union[str, Path]):
        """
        Claim ``target_path``.

        Args:
            target_path: Installation path to protect

        Raises:
            LockContentionError: If another party already holds the claim
        """
        self.target_path = Path(target_path)
        self.lock_path = get_lock_path(self.target_path)
        self._lock = SoftFileLock(self.lock_path, thread_local=False)

        try:
            self._lock.acquire(blocking=False)
        except Timeout as e:
            raise LockContentionError(self.target_path) from e

        self._released = False
        atexit.register(self.release)
        logger.debug(f"Acquired lock: {self.lock_path}")

    def release(self) -> None:
        """Remove the indicator. Calling this more than once is a no-op."""
        if self._released:
            return
        self._released = True
        atexit.unregister(self.release)
        self._lock.release(force=True)
        logger.debug(f"Released lock: {self.lock_path}")

    def __enter__(self) -> "Lock":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    @staticmethod
    def is_locked(
        target_path: Union[str, Path],
        timeout: float,
        cancellation: Optional[CancellationToken] = None,
        on_diagnostic: Optional[Callable[[str], None]] = None,
        poll_interval: float = 1.0,
        stale_after: Optional[float] = None,
    ) -> bool:
        """
        Wait for a contending claim on ``target_path`` to go away.

        Args:
            target_path: Installation path to check
            timeout: Maximum wait time in seconds
            cancellation: Optional token that stops the wait early
            on_diagnostic: Receives the timeout message if the wait times out
            poll_interval: Seconds between checks
            stale_after: Age in seconds past which an indicator is treated as
                abandoned by a crashed holder and removed (default: never)

        Returns:
            False as soon as the path is unlocked (or was never locked);
            True if it is still locked when the timeout elapses or the
            wait is cancelled
        """
        lock_path = get_lock_path(target_path)
        deadline = time.monotonic() + timeout

        while lock_path.exists():
            if stale_after is not None and _remove_if_stale(lock_path, stale_after):
                continue

            if is_cancelled(cancellation):
                logger.debug(f"Lock wait cancelled: {lock_path}")
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                message = str(LockTimeoutError(timeout))
                logger.debug(f"{message} ({lock_path})")
                if on_diagnostic is not None:
                    on_diagnostic(message)
                return True

            logger.debug(f"Waiting for lock to be released: {lock_path}")
            delay = min(poll_interval, remaining)
            if cancellation is not None:
                cancellation.wait(delay)
            else:
                time.sleep(delay)

        return False


__all__ = ["LOCK_SUFFIX", "Lock", "get_lock_path"]
