"""
Installer capability and the npm-backed implementation.

The installation worker only needs "materialize the package descriptor in
this directory". Keeping that behind ``Installer`` lets tests substitute a
fake that never spawns a process.
"""

import logging
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from tsstore.core.cancellation import CancellationToken, is_cancelled
from tsstore.core.exceptions import (
    InstallationError,
    InstallationTimeoutError,
    OperationCancelled,
)

logger = logging.getLogger(__name__)

NPM_INSTALL_ARGS = ["install", "--ignore-scripts", "--no-bin-links", "--no-package-lock"]


class Installer(ABC):
    """
    Abstract installer.

    Implementations install the dependencies declared by the package
    descriptor found in ``installation_path``.
    """

    @abstractmethod
    def install(
        self,
        installation_path: Path,
        version: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        """
        Install dependencies into ``installation_path``.

        Args:
            installation_path: Directory holding the package descriptor
            version: Compiler version being installed (for messages)
            cancellation: Optional token that aborts the installation

        Raises:
            InstallationError: If installation fails
            InstallationTimeoutError: If installation exceeds its time budget
            OperationCancelled: If the token fires
        """
        pass


class NpmInstaller(Installer):
    """
    Run ``npm install`` in the installation directory.

    The child process gets no lifecycle scripts, no bin links and no
    lockfile; its standard streams are discarded. It is killed when the
    timeout elapses or the cancellation token fires.

    Attributes:
        timeout: Seconds the process may run
        executable: npm executable name or path
        poll_interval: Seconds between checks of the child process
    """

    def __init__(
        self, timeout: float = 30, executable: str = "npm", poll_interval: float = 0.1
    ):
        self.timeout = timeout
        self.executable = executable
        self.poll_interval = poll_interval

    def build_command(self) -> List[str]:
        """
        Resolve the npm executable and build the install command.

        Raises:
            InstallationError: If the executable cannot be found
        """
        # shutil.which also resolves npm.cmd on Windows
        resolved = shutil.which(self.executable)
        if resolved is None:
            raise InstallationError(f"Executable '{self.executable}' was not found.")
        return [resolved, *NPM_INSTALL_ARGS]

    def install(
        self,
        installation_path: Path,
        version: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        command = self.build_command()
        logger.debug(f"Running {' '.join(command)} in {installation_path}")

        try:
            process = subprocess.Popen(
                command,
                cwd=installation_path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise InstallationError(f"Failed to start '{self.executable}': {e}") from e

        deadline = time.monotonic() + self.timeout
        try:
            while True:
                try:
                    return_code = process.wait(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    pass

                if is_cancelled(cancellation):
                    raise OperationCancelled(
                        f"Installation of 'typescript@{version}' was cancelled."
                    )
                if time.monotonic() >= deadline:
                    raise InstallationTimeoutError(
                        f"Setup timeout of {self.timeout:g}s was exceeded."
                    )
        finally:
            if process.poll() is None:
                logger.debug(f"Terminating installer process {process.pid}")
                process.kill()
                process.wait()

        if return_code != 0:
            raise InstallationError(f"Process exited with code {return_code}.")

        logger.debug(f"Installer finished for typescript@{version}")


__all__ = ["Installer", "NPM_INSTALL_ARGS", "NpmInstaller"]
