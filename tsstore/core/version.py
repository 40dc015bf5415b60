"""
Version comparison for compiler releases.

Only the numeric ``major.minor.patch`` core takes part in comparisons. A
pre-release suffix (``5.4.0-beta``, ``5.5.0-dev.20240501``) is carried along
but ignored when ordering, which is enough to pick between API layouts.
"""

import re

from packaging.version import Version as PackageVersion

from tsstore.core.exceptions import InvalidVersionError

# TypeScript 5.3 merged tsserverlibrary.js into typescript.js
API_LAYOUT_BOUNDARY = "5.3"

_VERSION_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?$")


class Version:
    """Static helpers for comparing dotted version strings."""

    @staticmethod
    def parse(version: str) -> PackageVersion:
        """
        Parse the numeric core of a version string.

        Args:
            version: Version such as '5.4.2', '5.3' or '5.5.0-beta'

        Returns:
            Comparable release version; missing parts compare as 0

        Raises:
            InvalidVersionError: If the string is not a dotted version
        """
        match = _VERSION_PATTERN.match(version.strip()) if version else None
        if match is None:
            raise InvalidVersionError(f"Invalid version: '{version}'")
        major, minor, patch, _ = match.groups()
        return PackageVersion(f"{major}.{minor or 0}.{patch or 0}")

    @staticmethod
    def is_valid(version: str) -> bool:
        try:
            Version.parse(version)
        except InvalidVersionError:
            return False
        return True

    @staticmethod
    def is_prerelease(version: str) -> bool:
        return "-" in version

    @staticmethod
    def compare(source: str, target: str) -> int:
        """
        Compare two versions.

        Returns:
            -1 if source < target, 0 if equal, 1 if source > target
        """
        left = Version.parse(source)
        right = Version.parse(target)
        return (left > right) - (left < right)

    @staticmethod
    def satisfies(source: str, target: str) -> bool:
        """
        Check whether ``source`` is at or above ``target``.

        Example:
            >>> Version.satisfies("5.4.2", "5.3")
            True
            >>> Version.satisfies("5.2.0", "5.3")
            False
        """
        return Version.compare(source, target) >= 0

    @staticmethod
    def minor_tag(version: str) -> str:
        """Return the ``major.minor`` tag a concrete version belongs to."""
        major, minor, _ = Version.parse(version).release
        return f"{major}.{minor}"


__all__ = ["API_LAYOUT_BOUNDARY", "Version"]
