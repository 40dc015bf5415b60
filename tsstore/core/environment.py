"""
Store configuration.

Settings are resolved in precedence order:

1. Explicit keyword arguments
2. Environment variables (``TSSTORE_STORE_PATH``, ``TSSTORE_TIMEOUT``,
   ``TSSTORE_NPM_REGISTRY``, ``TSSTORE_NPM_EXECUTABLE``)
3. The ``store:`` section of a YAML configuration file (``tsstore.yaml``)
4. Platform defaults

Default store locations:
    - macOS:   ~/Library/tsstore
    - Windows: %LOCALAPPDATA%\\tsstore
    - Other:   $XDG_DATA_HOME/tsstore or ~/.local/share/tsstore
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from tsstore.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "tsstore.yaml"
DEFAULT_TIMEOUT = 30
DEFAULT_NPM_REGISTRY = "https://registry.npmjs.org"
DEFAULT_NPM_EXECUTABLE = "npm"

ENV_STORE_PATH = "TSSTORE_STORE_PATH"
ENV_TIMEOUT = "TSSTORE_TIMEOUT"
ENV_NPM_REGISTRY = "TSSTORE_NPM_REGISTRY"
ENV_NPM_EXECUTABLE = "TSSTORE_NPM_EXECUTABLE"


def get_default_store_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the platform-specific default store directory.

    Args:
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        Path to the store root
    """
    environ = os.environ if environ is None else environ

    if sys.platform == "darwin":
        return Path.home() / "Library" / "tsstore"

    if os.name == "nt":
        local_app_data = environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / "tsstore"
        return Path.home() / "AppData" / "Local" / "tsstore"

    xdg_data_home = environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home) / "tsstore"
    return Path.home() / ".local" / "share" / "tsstore"


def load_yaml_config(config_file: Path, required: bool = False) -> Dict[str, Any]:
    """
    Load the ``store:`` section of a YAML configuration file.

    Args:
        config_file: Path to YAML configuration file
        required: If True, raise error if file doesn't exist

    Returns:
        Store settings (empty dict if file doesn't exist and not required)

    Raises:
        ConfigurationError: If the file is required but missing, or malformed
    """
    if not config_file.exists():
        if required:
            raise ConfigurationError(f"Configuration file not found: {config_file}")
        logger.debug(f"Config file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading configuration from {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Expected a mapping in {config_file}")

    section = config.get("store") or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'store' must be a mapping in {config_file}")
    return section


def _parse_timeout(value: Any, source: str) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid timeout in {source}: {value!r}") from e
    if timeout <= 0:
        raise ConfigurationError(f"Timeout must be positive in {source}: {value!r}")
    return timeout


@dataclass(frozen=True)
class StoreEnvironment:
    """
    Resolved store settings.

    Attributes:
        store_path: Root directory holding per-version installations
        timeout: Seconds allowed for lock waits, installs and registry requests
        npm_registry: Base URL of the npm registry
        npm_executable: Installer executable name or path
    """

    store_path: Path
    timeout: float = DEFAULT_TIMEOUT
    npm_registry: str = DEFAULT_NPM_REGISTRY
    npm_executable: str = DEFAULT_NPM_EXECUTABLE

    @classmethod
    def resolve(
        cls,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "StoreEnvironment":
        """
        Build settings from overrides, environment and config file.

        Args:
            config_file: YAML file to read (default: ./tsstore.yaml if present)
            environ: Environment mapping (default: ``os.environ``)
            **overrides: Explicit values for any field

        Raises:
            ConfigurationError: If a value is invalid
        """
        environ = os.environ if environ is None else environ
        required = config_file is not None
        file_config = load_yaml_config(
            Path(config_file) if required else Path.cwd() / DEFAULT_CONFIG_FILE,
            required=required,
        )

        def pick(field_name: str, env_name: str) -> Optional[Any]:
            if overrides.get(field_name) is not None:
                return overrides[field_name]
            if environ.get(env_name):
                return environ[env_name]
            return file_config.get(field_name)

        store_path = pick("store_path", ENV_STORE_PATH)
        timeout = pick("timeout", ENV_TIMEOUT)
        npm_registry = pick("npm_registry", ENV_NPM_REGISTRY)
        npm_executable = pick("npm_executable", ENV_NPM_EXECUTABLE)

        environment = cls(
            store_path=(
                Path(store_path).expanduser()
                if store_path
                else get_default_store_path(environ)
            ),
            timeout=(
                _parse_timeout(timeout, "store configuration")
                if timeout is not None
                else DEFAULT_TIMEOUT
            ),
            npm_registry=str(npm_registry or DEFAULT_NPM_REGISTRY).rstrip("/"),
            npm_executable=str(npm_executable or DEFAULT_NPM_EXECUTABLE),
        )
        logger.debug(f"Resolved store environment: {environment}")
        return environment


__all__ = [
    "DEFAULT_NPM_REGISTRY",
    "DEFAULT_TIMEOUT",
    "StoreEnvironment",
    "get_default_store_path",
    "load_yaml_config",
]
