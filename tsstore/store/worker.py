"""
Installation worker: makes one compiler version usable on disk.

Per-version layout under the store root:

    <store>/<version>/package.json
    <store>/<version>/__ready__
    <store>/<version>/node_modules/typescript/lib/typescript.js
    <store>/<version>__lock__        (only while an install is running)

``__ready__`` is the single commit point. It is written after the installer
exits successfully and before the lock is released, so anyone who sees it
can rely on a complete installation.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from tsstore.core.cancellation import CancellationToken
from tsstore.core.diagnostics import Diagnostic, DiagnosticSink, StoreInfo
from tsstore.core.exceptions import (
    LockContentionError,
    LockTimeoutError,
    OperationCancelled,
    TsStoreError,
)
from tsstore.core.locking import Lock
from tsstore.core.version import API_LAYOUT_BOUNDARY, Version
from tsstore.store.installer import Installer

logger = logging.getLogger(__name__)

READY_FILE_NAME = "__ready__"
PACKAGE_FILE_NAME = "package.json"

# Added to the install timeout before an existing lock indicator counts as
# abandoned by a crashed process
STALE_LOCK_MARGIN = 60


def get_module_path(installation_path: Path, version: str) -> Path:
    """
    Return the entry file to load for ``version``.

    Since TypeScript 5.3 the language service lives in 'typescript.js';
    older releases ship it as 'tsserverlibrary.js'.
    """
    lib_path = installation_path / "node_modules" / "typescript" / "lib"
    if Version.satisfies(version, API_LAYOUT_BOUNDARY):
        return lib_path / "typescript.js"
    return lib_path / "tsserverlibrary.js"


def render_package_json(version: str) -> str:
    package_json = {
        "name": "@tsstore/typescript",
        "version": version,
        "description": "Do not change. This package was generated by tsstore",
        "private": True,
        "license": "MIT",
        "dependencies": {
            "typescript": version,
        },
    }
    return json.dumps(package_json, indent=2)


class InstallationWorker:
    """
    Guarantee an installed, ready-to-use compiler for a concrete version.

    Safe under concurrent callers in separate processes: writers serialize
    through a path-scoped ``Lock``; readers of a ready version never touch it.
    """

    def __init__(
        self,
        store_path: Path,
        installer: Installer,
        sink: DiagnosticSink,
        timeout: float = 30,
        lock_poll_interval: float = 1.0,
        stale_lock_age: Optional[float] = None,
    ):
        """
        Initialize installation worker.

        Args:
            store_path: Store root directory
            installer: Installer that materializes the package descriptor
            sink: Receiver for info events and diagnostics
            timeout: Seconds to wait for a contending lock
            lock_poll_interval: Seconds between lock checks
            stale_lock_age: Age in seconds after which a lock indicator is
                removed as abandoned (default: timeout + STALE_LOCK_MARGIN)
        """
        self.store_path = Path(store_path)
        self.installer = installer
        self.sink = sink
        self.timeout = timeout
        self.lock_poll_interval = lock_poll_interval
        self.stale_lock_age = (
            timeout + STALE_LOCK_MARGIN if stale_lock_age is None else stale_lock_age
        )

    def get_installation_path(self, version: str) -> Path:
        return self.store_path / version

    def is_ready(self, version: str) -> bool:
        return (self.get_installation_path(version) / READY_FILE_NAME).exists()

    def ensure(
        self, version: str, cancellation: Optional[CancellationToken] = None
    ) -> Optional[Path]:
        """
        Make sure ``version`` is installed and return its entry file.

        Args:
            version: Concrete compiler version
            cancellation: Optional token that aborts waiting and installing

        Returns:
            Path to the compiler entry file, or None if the version is
            unavailable for this call
        """
        installation_path = self.get_installation_path(version)
        failure_text = f"Failed to install 'typescript@{version}'."

        def report_lock_timeout(text: str) -> None:
            self.sink.on_diagnostic(
                Diagnostic.error(
                    [failure_text, text], cause=LockTimeoutError(self.timeout)
                )
            )

        try:
            module_path = get_module_path(installation_path, version)

            while True:
                if Lock.is_locked(
                    installation_path,
                    timeout=self.timeout,
                    cancellation=cancellation,
                    on_diagnostic=report_lock_timeout,
                    poll_interval=self.lock_poll_interval,
                    stale_after=self.stale_lock_age,
                ):
                    return None

                if self.is_ready(version):
                    break

                if self._install(version, installation_path, cancellation):
                    break

        except OperationCancelled:
            logger.debug(f"Installation of typescript@{version} cancelled")
            return None
        except (TsStoreError, OSError) as e:
            self.sink.on_diagnostic(Diagnostic.from_error(failure_text, e))
            return None

        return module_path

    def _install(
        self,
        version: str,
        installation_path: Path,
        cancellation: Optional[CancellationToken],
    ) -> bool:
        """
        Claim the path and install ``version`` into it.

        Returns:
            True once the version is ready; False if another party claimed
            the path first and the caller should wait for it again
        """
        installation_path.mkdir(parents=True, exist_ok=True)

        try:
            lock = Lock(installation_path)
        except LockContentionError:
            logger.debug(f"Lost the race to install typescript@{version}, waiting")
            return False

        with lock:
            # Another process may have finished between the check and the claim
            if self.is_ready(version):
                logger.debug(f"typescript@{version} became ready while waiting")
                return True

            self.sink.on_info(StoreInfo(version, installation_path))

            (installation_path / PACKAGE_FILE_NAME).write_text(
                render_package_json(version), encoding="utf-8"
            )
            self.installer.install(installation_path, version, cancellation)

            (installation_path / READY_FILE_NAME).touch()

        logger.info(f"Installed typescript@{version} at {installation_path}")
        return True


__all__ = [
    "InstallationWorker",
    "PACKAGE_FILE_NAME",
    "READY_FILE_NAME",
    "get_module_path",
    "render_package_json",
]
