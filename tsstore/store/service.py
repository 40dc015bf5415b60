"""
Store service: the facade clients use to resolve and install compilers.

Usage:
    from tsstore.store import StoreService

    store = StoreService()
    store.open()
    module_path = store.install("latest")
"""

import logging
import time
from pathlib import Path
from typing import List, Optional

from tsstore.core.cancellation import CancellationToken
from tsstore.core.diagnostics import Diagnostic, DiagnosticSink, LoggingDiagnosticSink
from tsstore.core.environment import StoreEnvironment
from tsstore.core.exceptions import ManifestNotOpenError, UnresolvableTagError
from tsstore.core.filesystem import FilesystemError, safe_rmtree
from tsstore.store.installer import Installer, NpmInstaller
from tsstore.store.manifest import DEFAULT_AGE_TOLERANCE, Manifest, ManifestWorker
from tsstore.store.registry import RegistryClient
from tsstore.store.worker import InstallationWorker

logger = logging.getLogger(__name__)


class StoreService:
    """
    Compose manifest handling and installation for a client.

    Every operation except ``open`` and ``prune`` requires a successful
    ``open()``; called earlier, it reports a diagnostic and returns a
    neutral value instead of raising.

    Attributes:
        environment: Resolved store settings
        sink: Receiver for info events and diagnostics
    """

    def __init__(
        self,
        environment: Optional[StoreEnvironment] = None,
        sink: Optional[DiagnosticSink] = None,
        registry: Optional[RegistryClient] = None,
        installer: Optional[Installer] = None,
        lock_poll_interval: float = 1.0,
        manifest_max_age: float = DEFAULT_AGE_TOLERANCE,
    ):
        self.environment = environment or StoreEnvironment.resolve()
        self.sink = sink or LoggingDiagnosticSink()
        self._manifest: Optional[Manifest] = None

        registry = registry or RegistryClient(
            self.environment.npm_registry, timeout=self.environment.timeout
        )
        installer = installer or NpmInstaller(
            timeout=self.environment.timeout,
            executable=self.environment.npm_executable,
        )

        self._manifest_worker = ManifestWorker(
            self.store_path,
            registry,
            self.sink,
            on_prune=self.prune,
            max_age=manifest_max_age,
        )
        self._installation_worker = InstallationWorker(
            self.store_path,
            installer,
            self.sink,
            timeout=self.environment.timeout,
            lock_poll_interval=lock_poll_interval,
        )

    @property
    def store_path(self) -> Path:
        return self.environment.store_path

    @property
    def is_open(self) -> bool:
        return self._manifest is not None

    def _require_manifest(self) -> Optional[Manifest]:
        if self._manifest is None:
            error = ManifestNotOpenError()
            self.sink.on_diagnostic(Diagnostic.error(str(error), cause=error))
        return self._manifest

    def open(self, cancellation: Optional[CancellationToken] = None) -> None:
        """Load or fetch the manifest. Repeated calls are no-ops once open."""
        if self._manifest is not None:
            return

        self._manifest = self._manifest_worker.open(cancellation)

        # TODO: garbage collect versions whose last_used is older than 60 days

    def supported_tags(self) -> List[str]:
        manifest = self._require_manifest()
        if manifest is None:
            return []
        return self._manifest_worker.supported_tags(manifest)

    def resolve_tag(self, tag: str) -> Optional[str]:
        manifest = self._require_manifest()
        if manifest is None:
            return None
        return self._manifest_worker.resolve_tag(manifest, tag)

    def validate_tag(self, tag: str) -> bool:
        manifest = self._require_manifest()
        if manifest is None:
            return False
        return self._manifest_worker.validate_tag(manifest, tag)

    def install(
        self, tag: str, cancellation: Optional[CancellationToken] = None
    ) -> Optional[Path]:
        """
        Resolve ``tag`` and make sure the compiler is installed.

        Args:
            tag: Version or tag such as '5.4', 'latest' or '5.4.2'
            cancellation: Optional token that aborts the installation

        Returns:
            Path to the compiler entry file, or None if unavailable
        """
        manifest = self._require_manifest()
        if manifest is None:
            return None

        version = self._manifest_worker.resolve_tag(manifest, tag)
        if version is None:
            error = UnresolvableTagError(tag)
            self.sink.on_diagnostic(Diagnostic.error(str(error), cause=error))
            return None

        module_path = self._installation_worker.ensure(version, cancellation)

        if module_path is not None:
            manifest.last_used[version] = time.time()
            self._manifest_worker.save(manifest)

        return module_path

    def update(self, cancellation: Optional[CancellationToken] = None) -> bool:
        """Refresh the manifest from the registry."""
        manifest = self._require_manifest()
        if manifest is None:
            return False
        return self._manifest_worker.update(manifest, cancellation)

    def prune(self) -> None:
        """Remove the whole store. A missing store root is not an error."""
        try:
            removed = safe_rmtree(self.store_path)
        except FilesystemError as e:
            self.sink.on_diagnostic(Diagnostic.from_error("Failed to prune the store.", e))
            return

        if removed:
            logger.info(f"Removed store: {self.store_path}")


__all__ = ["StoreService"]
