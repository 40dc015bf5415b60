"""
Centralized exception hierarchy for tsstore.

This module defines all custom exceptions used across the codebase
to provide clear exception semantics at the store boundaries.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class TsStoreError(Exception):
    """Base exception for all tsstore errors."""

    pass


class OperationCancelled(TsStoreError):
    """Raised when the caller cancelled an operation.

    Cancellation is a silent outcome: it is never reported as a diagnostic.
    """

    pass


class ConfigurationError(TsStoreError):
    """Raised when store configuration values are invalid."""

    pass


class InvalidVersionError(TsStoreError):
    """Invalid version format."""

    pass


# ============================================================================
# Manifest Exceptions
# ============================================================================


class ManifestError(TsStoreError):
    """Base exception for manifest-related errors."""

    pass


class ManifestNotOpenError(ManifestError):
    """Raised when a store operation is invoked before the manifest is open."""

    def __init__(self):
        super().__init__(
            "Store manifest is not open. Call 'StoreService.open()' first."
        )


class UnresolvableTagError(ManifestError):
    """Raised when a tag is neither a known version nor a resolution key."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Cannot add the 'typescript' package for the '{tag}' tag.")


class StaleMetadataWarning(ManifestError, UserWarning):
    """Resolution may be based on metadata older than the age tolerance."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"The resolution of the '{tag}' tag may be outdated.")


class RegistryError(TsStoreError):
    """Raised when package metadata cannot be fetched from the registry."""

    pass


# ============================================================================
# Installation Exceptions
# ============================================================================


class InstallationError(TsStoreError):
    """Installer process failed to spawn or exited unsuccessfully."""

    pass


class InstallationTimeoutError(InstallationError):
    """Installer process exceeded its time budget and was terminated."""

    pass


# ============================================================================
# Lock Exceptions
# ============================================================================


class LockError(TsStoreError):
    """Base exception for lock-related errors."""

    pass


class LockTimeoutError(LockError):
    """Raised when a contending lock was not released within the timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Lock wait timeout of {timeout:g}s was exceeded.")


class LockContentionError(LockError):
    """Raised when a path is claimed while another party holds its lock."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Installation path is already locked: {path}")
