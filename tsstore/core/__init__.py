"""
Core functionality for tsstore.

This package contains the foundational modules the store subsystem depends on.
"""

from .cancellation import CancellationToken

from .diagnostics import (
    Diagnostic,
    DiagnosticCategory,
    DiagnosticSink,
    LoggingDiagnosticSink,
    StoreInfo,
)

from .environment import (
    StoreEnvironment,
    get_default_store_path,
)

from .locking import Lock

from .version import API_LAYOUT_BOUNDARY, Version

from .exceptions import (
    TsStoreError,
    OperationCancelled,
    ConfigurationError,
    InvalidVersionError,
    ManifestError,
    ManifestNotOpenError,
    UnresolvableTagError,
    StaleMetadataWarning,
    RegistryError,
    InstallationError,
    InstallationTimeoutError,
    LockError,
    LockTimeoutError,
    LockContentionError,
)

__all__ = [
    "CancellationToken",
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticSink",
    "LoggingDiagnosticSink",
    "StoreInfo",
    "StoreEnvironment",
    "get_default_store_path",
    "Lock",
    "API_LAYOUT_BOUNDARY",
    "Version",
    "TsStoreError",
    "OperationCancelled",
    "ConfigurationError",
    "InvalidVersionError",
    "ManifestError",
    "ManifestNotOpenError",
    "UnresolvableTagError",
    "StaleMetadataWarning",
    "RegistryError",
    "InstallationError",
    "InstallationTimeoutError",
    "LockError",
    "LockTimeoutError",
    "LockContentionError",
]
