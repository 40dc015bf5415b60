"""Reusable store fixtures for testing.

This module provides fakes for the store's collaborators so tests never spawn
npm or reach the network:

- RecordingSink: collects info events and diagnostics
- FakeInstaller: materializes a fake 'typescript' package, counts calls
- FakeRegistry: returns canned metadata or raises a canned error
"""

import threading
import time
from pathlib import Path
from typing import List, Optional

import pytest

from tsstore.core.cancellation import CancellationToken
from tsstore.core.diagnostics import (
    Diagnostic,
    DiagnosticCategory,
    DiagnosticSink,
    StoreInfo,
)
from tsstore.core.environment import StoreEnvironment
from tsstore.core.exceptions import InstallationError
from tsstore.store.installer import Installer
from tsstore.store.registry import RegistryMetadata


class RecordingSink(DiagnosticSink):
    """Sink that keeps everything it receives."""

    def __init__(self):
        self.infos: List[StoreInfo] = []
        self.diagnostics: List[Diagnostic] = []
        self._lock = threading.Lock()

    def on_info(self, info: StoreInfo) -> None:
        with self._lock:
            self.infos.append(info)

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self.diagnostics.append(diagnostic)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.category is DiagnosticCategory.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.category is DiagnosticCategory.WARNING]


class FakeInstaller(Installer):
    """
    Installer that writes the files npm would produce.

    Attributes:
        calls: Versions passed to install(), in call order
        delay: Seconds to sleep before finishing (cancellation-aware)
        error: Exception to raise instead of installing
    """

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.calls: List[str] = []
        self.delay = delay
        self.error = error
        self._lock = threading.Lock()

    def install(
        self,
        installation_path: Path,
        version: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        with self._lock:
            self.calls.append(version)

        if self.delay:
            if cancellation is not None:
                cancellation.wait(self.delay)
                cancellation.raise_if_cancelled()
            else:
                time.sleep(self.delay)

        if self.error is not None:
            raise self.error

        lib_dir = installation_path / "node_modules" / "typescript" / "lib"
        lib_dir.mkdir(parents=True, exist_ok=True)
        (lib_dir / "typescript.js").write_text("// typescript", encoding="utf-8")
        (lib_dir / "tsserverlibrary.js").write_text("// tsserver", encoding="utf-8")


class FakeRegistry:
    """Stand-in for RegistryClient."""

    def __init__(
        self,
        metadata: Optional[RegistryMetadata] = None,
        error: Optional[Exception] = None,
    ):
        self.metadata = metadata
        self.error = error
        self.fetch_count = 0

    def fetch(self, cancellation: Optional[CancellationToken] = None) -> RegistryMetadata:
        self.fetch_count += 1
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        if self.error is not None:
            raise self.error
        return RegistryMetadata(
            resolutions=dict(self.metadata.resolutions),
            versions=list(self.metadata.versions),
        )


def make_metadata() -> RegistryMetadata:
    """Registry metadata resembling the real 'typescript' package."""
    return RegistryMetadata(
        resolutions={
            "5.0": "5.0.4",
            "5.1": "5.1.6",
            "5.2": "5.2.2",
            "5.3": "5.3.3",
            "5.4": "5.4.5",
            "beta": "5.5.0-beta",
            "latest": "5.4.5",
            "next": "5.5.0-dev.20240501",
            "rc": "5.4.1-rc",
        },
        versions=[
            "5.0.4",
            "5.1.6",
            "5.2.0",
            "5.2.2",
            "5.3.3",
            "5.4.2",
            "5.4.5",
        ],
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry(make_metadata())


@pytest.fixture
def store_path(tmp_path) -> Path:
    """Store root that does not exist yet."""
    return tmp_path / "store"


@pytest.fixture
def store_environment(store_path) -> StoreEnvironment:
    return StoreEnvironment(store_path=store_path, timeout=2)


def failing_installer(message: str = "Process exited with code 1.") -> FakeInstaller:
    return FakeInstaller(error=InstallationError(message))
