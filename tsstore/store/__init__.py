"""
Store subsystem: manifest-backed tag resolution and compiler installation.
"""

from .installer import Installer, NpmInstaller
from .manifest import Manifest, ManifestWorker
from .registry import RegistryClient, RegistryMetadata
from .service import StoreService
from .worker import InstallationWorker

__all__ = [
    "Installer",
    "NpmInstaller",
    "Manifest",
    "ManifestWorker",
    "RegistryClient",
    "RegistryMetadata",
    "StoreService",
    "InstallationWorker",
]
