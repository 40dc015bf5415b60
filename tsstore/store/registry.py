"""
npm registry client for compiler metadata.

Fetches the abbreviated package document for ``typescript`` and reduces it to
what the manifest needs:

- ``versions``: every stable release at or above the oldest supported one
- ``resolutions``: ``major.minor`` tags mapped to their newest patch release,
  followed by the registry's dist-tags (``beta``, ``latest``, ``next``, ``rc``)

The response is streamed so that a cancellation token is honoured between
chunks, and transient connection failures are retried with exponential
back-off.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from tsstore.core.cancellation import CancellationToken, sleep
from tsstore.core.exceptions import RegistryError
from tsstore.core.version import Version

logger = logging.getLogger(__name__)

PACKAGE_NAME = "typescript"
OLDEST_SUPPORTED_VERSION = "4.7.2"
DIST_TAGS = ("beta", "latest", "next", "rc")

ABBREVIATED_METADATA = (
    "application/vnd.npm.install-v1+json;q=1.0, application/json;q=0.8, */*"
)


@dataclass
class RegistryMetadata:
    """Tag resolutions and known versions as reported by the registry."""

    resolutions: Dict[str, str] = field(default_factory=dict)
    versions: List[str] = field(default_factory=list)


class RegistryClient:
    """
    Read-only client for one npm registry.

    Example:
        >>> client = RegistryClient("https://registry.npmjs.org", timeout=30)
        >>> metadata = client.fetch()
        >>> metadata.resolutions["latest"]
        '5.4.5'
    """

    def __init__(
        self,
        registry_url: str,
        timeout: float = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
    ):
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()

    @property
    def package_url(self) -> str:
        return f"{self.registry_url}/{PACKAGE_NAME}"

    def fetch(self, cancellation: Optional[CancellationToken] = None) -> RegistryMetadata:
        """
        Fetch and reduce the package document.

        Args:
            cancellation: Optional token that aborts the request

        Returns:
            RegistryMetadata with resolutions and versions

        Raises:
            RegistryError: If the registry cannot be reached or answers badly
            OperationCancelled: If the token fires
        """
        for attempt in range(self.max_retries):
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            try:
                document = self._request(cancellation)
                return parse_package_document(document)
            except (Timeout, ConnectionError) as e:
                if attempt == self.max_retries - 1:
                    raise RegistryError(
                        f"Registry request failed after {self.max_retries} attempts: {e}"
                    ) from e

                backoff_seconds = 2**attempt
                logger.warning(
                    f"Registry request attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {backoff_seconds}s..."
                )
                sleep(backoff_seconds, cancellation)
            except HTTPError as e:
                raise RegistryError(f"Registry responded with an error: {e}") from e
            except RequestException as e:
                raise RegistryError(f"Registry request failed: {e}") from e

        raise RegistryError("Registry request failed for unknown reason")

    def _request(self, cancellation: Optional[CancellationToken]) -> dict:
        logger.debug(f"Fetching package metadata from {self.package_url}")

        response = self.session.get(
            self.package_url,
            headers={"Accept": ABBREVIATED_METADATA},
            stream=True,
            timeout=self.timeout,
        )
        try:
            response.raise_for_status()

            chunks = []
            for chunk in response.iter_content(chunk_size=65536):
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                if chunk:
                    chunks.append(chunk)
        finally:
            response.close()

        try:
            document = json.loads(b"".join(chunks).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise RegistryError(f"Registry returned malformed metadata: {e}") from e

        if not isinstance(document, dict):
            raise RegistryError("Registry returned malformed metadata: not an object")
        return document


def parse_package_document(document: dict) -> RegistryMetadata:
    """
    Reduce an npm package document to resolutions and versions.

    Args:
        document: Parsed JSON with ``versions`` and ``dist-tags`` members

    Returns:
        RegistryMetadata; resolutions are ordered oldest minor first, with
        dist-tags last

    Raises:
        RegistryError: If the document has no usable ``versions`` member
    """
    published = document.get("versions")
    if not isinstance(published, dict):
        raise RegistryError("Registry returned malformed metadata: missing 'versions'")

    versions = sorted(
        (
            version
            for version in published
            if Version.is_valid(version)
            and not Version.is_prerelease(version)
            and Version.satisfies(version, OLDEST_SUPPORTED_VERSION)
        ),
        key=Version.parse,
    )

    resolutions: Dict[str, str] = {}
    for version in versions:
        # Ascending order, so the last write is the newest patch
        resolutions[Version.minor_tag(version)] = version

    dist_tags = document.get("dist-tags") or {}
    for tag in DIST_TAGS:
        version = dist_tags.get(tag)
        if isinstance(version, str) and Version.is_valid(version):
            resolutions[tag] = version

    logger.debug(
        f"Registry lists {len(versions)} versions and {len(resolutions)} tags"
    )
    return RegistryMetadata(resolutions=resolutions, versions=versions)


__all__ = [
    "DIST_TAGS",
    "OLDEST_SUPPORTED_VERSION",
    "RegistryClient",
    "RegistryMetadata",
    "parse_package_document",
]
