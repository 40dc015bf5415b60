"""
Manifest of known compiler versions and tag resolutions.

The manifest lives at ``<store>/store-manifest.json``:

    {
      "$version": "1",
      "resolutions": {"5.3": "5.3.3", "5.4": "5.4.5", "latest": "5.4.5"},
      "versions": ["5.3.3", "5.4.5"],
      "lastFetched": 1717171717.0,
      "lastUsed": {"5.4.5": 1717171800.0}
    }

Insertion order of ``resolutions`` is meaningful: the last entries are the
ones most recently added by the registry, and only those get a staleness
warning when the manifest could not be refreshed.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from tsstore.core.cancellation import CancellationToken
from tsstore.core.diagnostics import Diagnostic, DiagnosticSink
from tsstore.core.exceptions import (
    ManifestError,
    OperationCancelled,
    RegistryError,
    StaleMetadataWarning,
)
from tsstore.core.filesystem import atomic_write
from tsstore.store.registry import RegistryClient, RegistryMetadata

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "store-manifest.json"
MANIFEST_SCHEMA_VERSION = "1"

# Seconds a resolution may age before it is reported as possibly outdated
DEFAULT_AGE_TOLERANCE = 60
RECENT_RESOLUTION_COUNT = 5

FETCH_FAILED_TEXT = "Failed to fetch metadata of the 'typescript' package from the registry."
UPDATE_FAILED_TEXT = "Failed to update metadata of the 'typescript' package from the registry."


@dataclass
class Manifest:
    """
    Authoritative record of what is known about available versions.

    Attributes:
        resolutions: Tag to concrete version, in insertion order
        versions: Concrete versions, without duplicates
        last_fetched: Epoch seconds of the last successful registry refresh
        last_used: Concrete version to epoch seconds of its last use
    """

    resolutions: Dict[str, str] = field(default_factory=dict)
    versions: List[str] = field(default_factory=list)
    last_fetched: float = 0.0
    last_used: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_metadata(
        cls, metadata: RegistryMetadata, fetched_at: Optional[float] = None
    ) -> "Manifest":
        return cls(
            resolutions=dict(metadata.resolutions),
            versions=list(dict.fromkeys(metadata.versions)),
            last_fetched=time.time() if fetched_at is None else fetched_at,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        """
        Build a manifest from its persisted form.

        Raises:
            ManifestError: If the schema version or a field is wrong
        """
        if data.get("$version") != MANIFEST_SCHEMA_VERSION:
            raise ManifestError(
                f"Unsupported manifest schema version: {data.get('$version')!r}"
            )

        resolutions = data.get("resolutions")
        versions = data.get("versions")
        last_fetched = data.get("lastFetched")
        last_used = data.get("lastUsed") or {}

        if not isinstance(resolutions, dict) or not isinstance(versions, list):
            raise ManifestError("Manifest is missing 'resolutions' or 'versions'")
        if not isinstance(last_fetched, (int, float)) or not isinstance(last_used, dict):
            raise ManifestError("Manifest has invalid timestamps")
        if not all(isinstance(v, (int, float)) for v in last_used.values()):
            raise ManifestError("Manifest has invalid 'lastUsed' timestamps")

        return cls(
            resolutions={str(k): str(v) for k, v in resolutions.items()},
            versions=list(dict.fromkeys(str(v) for v in versions)),
            last_fetched=float(last_fetched),
            last_used={str(k): float(v) for k, v in last_used.items()},
        )

    def to_dict(self) -> dict:
        return {
            "$version": MANIFEST_SCHEMA_VERSION,
            "resolutions": dict(self.resolutions),
            "versions": list(self.versions),
            "lastFetched": self.last_fetched,
            "lastUsed": dict(self.last_used),
        }

    def merge(self, metadata: RegistryMetadata, fetched_at: Optional[float] = None):
        """
        Fold fresh registry data into this manifest in place.

        Existing tags keep their position and take the new value; new tags
        are appended. Versions are unioned.
        """
        self.resolutions.update(metadata.resolutions)
        known = set(self.versions)
        for version in metadata.versions:
            if version not in known:
                self.versions.append(version)
                known.add(version)
        self.last_fetched = time.time() if fetched_at is None else fetched_at


class ManifestWorker:
    """
    Owns the manifest lifecycle and tag resolution.

    Attributes:
        store_path: Store root directory
        manifest_path: Location of the persisted snapshot
        max_age: Seconds a snapshot is used without refreshing it on open
    """

    def __init__(
        self,
        store_path: Path,
        registry: RegistryClient,
        sink: DiagnosticSink,
        on_prune: Callable[[], None],
        max_age: float = DEFAULT_AGE_TOLERANCE,
    ):
        """
        Initialize manifest worker.

        Args:
            store_path: Store root directory
            registry: Client used to fetch package metadata
            sink: Receiver for diagnostics
            on_prune: Called when an incompatible snapshot requires wiping the store
            max_age: Seconds a persisted snapshot stays fresh enough to skip fetching
        """
        self.store_path = Path(store_path)
        self.manifest_path = self.store_path / MANIFEST_FILE_NAME
        self.registry = registry
        self.sink = sink
        self.on_prune = on_prune
        self.max_age = max_age

    def open(self, cancellation: Optional[CancellationToken] = None) -> Optional[Manifest]:
        """
        Load the persisted manifest or fetch a fresh one.

        Args:
            cancellation: Optional token that aborts the registry fetch

        Returns:
            The manifest, or None if none could be loaded or fetched
        """
        manifest = self._load()

        if manifest is not None and not self.is_outdated(manifest, self.max_age):
            logger.debug(f"Using manifest snapshot: {self.manifest_path}")
            return manifest

        try:
            metadata = self.registry.fetch(cancellation)
        except OperationCancelled:
            logger.debug("Manifest fetch cancelled")
            return None
        except RegistryError as e:
            if manifest is not None:
                # Resolutions from the stale snapshot carry a warning later on
                logger.debug(f"Keeping stale manifest snapshot: {e}")
                return manifest
            self.sink.on_diagnostic(Diagnostic.from_error(FETCH_FAILED_TEXT, e))
            return None

        if manifest is None:
            manifest = Manifest.from_metadata(metadata)
        else:
            manifest.merge(metadata)

        self.save(manifest)
        return manifest

    def _load(self) -> Optional[Manifest]:
        if not self.manifest_path.exists():
            return None

        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ManifestError("Manifest is not a JSON object")
            return Manifest.from_dict(data)
        except (OSError, TypeError, ValueError, ManifestError) as e:
            logger.info(f"Discarding incompatible store manifest: {e}")
            self.on_prune()
            return None

    def is_outdated(self, manifest: Manifest, age_tolerance: float = 0) -> bool:
        """Return True if the manifest was fetched more than ``age_tolerance`` seconds ago."""
        return time.time() - manifest.last_fetched > age_tolerance

    def update(
        self, manifest: Manifest, cancellation: Optional[CancellationToken] = None
    ) -> bool:
        """
        Refresh ``manifest`` from the registry in place and persist it.

        Returns:
            True if the manifest was refreshed
        """
        try:
            metadata = self.registry.fetch(cancellation)
        except OperationCancelled:
            logger.debug("Manifest update cancelled")
            return False
        except RegistryError as e:
            self.sink.on_diagnostic(Diagnostic.from_error(UPDATE_FAILED_TEXT, e))
            return False

        manifest.merge(metadata)
        logger.info(
            f"Updated store manifest: {len(manifest.versions)} versions, "
            f"{len(manifest.resolutions)} tags"
        )
        return self.save(manifest)

    def persist(self, manifest: Manifest) -> None:
        """
        Write the manifest atomically.

        Raises:
            OSError: If the snapshot cannot be written
        """
        atomic_write(self.manifest_path, json.dumps(manifest.to_dict(), indent=2))
        logger.debug(f"Persisted store manifest: {self.manifest_path}")

    def save(self, manifest: Manifest) -> bool:
        try:
            self.persist(manifest)
        except OSError as e:
            self.sink.on_diagnostic(
                Diagnostic.from_error("Failed to save the store manifest.", e)
            )
            return False
        return True

    def resolve_tag(
        self,
        manifest: Manifest,
        tag: str,
        age_tolerance: float = DEFAULT_AGE_TOLERANCE,
    ) -> Optional[str]:
        """
        Resolve ``tag`` to a concrete version.

        A known version resolves to itself. Otherwise the resolution table is
        consulted; when the manifest is outdated and ``tag`` is one of the most
        recently added entries, a staleness warning is reported. The resolved
        value is returned either way.

        Returns:
            The concrete version, or None if the tag cannot be resolved
        """
        if tag in manifest.versions:
            return tag

        version = manifest.resolutions.get(tag)
        if version is None:
            return None

        recent = list(manifest.resolutions)[-RECENT_RESOLUTION_COUNT:]
        if tag in recent and self.is_outdated(manifest, age_tolerance):
            self._report_stale(tag)

        return version

    def validate_tag(
        self,
        manifest: Manifest,
        tag: str,
        age_tolerance: float = DEFAULT_AGE_TOLERANCE,
    ) -> bool:
        """
        Check whether ``tag`` is a known version or resolution key.

        An unknown tag sharing the ``major.minor`` prefix of 'latest' might
        only be missing because the metadata is stale; that case gets a
        staleness warning as a hint.
        """
        if tag in manifest.versions or tag in manifest.resolutions:
            return True

        latest = manifest.resolutions.get("latest")
        if (
            latest is not None
            and tag.startswith(latest[:3])
            and self.is_outdated(manifest, age_tolerance)
        ):
            self._report_stale(tag)

        return False

    def _report_stale(self, tag: str) -> None:
        warning = StaleMetadataWarning(tag)
        self.sink.on_diagnostic(
            Diagnostic.warning([UPDATE_FAILED_TEXT, str(warning)], cause=warning)
        )

    @staticmethod
    def supported_tags(manifest: Manifest) -> List[str]:
        return sorted({*manifest.resolutions, *manifest.versions})


__all__ = [
    "DEFAULT_AGE_TOLERANCE",
    "MANIFEST_FILE_NAME",
    "MANIFEST_SCHEMA_VERSION",
    "Manifest",
    "ManifestWorker",
]
