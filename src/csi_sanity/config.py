"""Harness configuration.

Settings come from, lowest to highest precedence: defaults, a YAML config
file (~/.csi-sanity/config.yaml), environment variables, CLI flags. Secrets
and volume parameters live in separate YAML files.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .client import DEFAULT_PROTO_MODULE, DEFAULT_TIMEOUT
from .errors import ConfigError
from .shared.paths import CONFIG_FILE, DEFAULT_STAGING_PATH, DEFAULT_TARGET_PATH

# Environment variable mappings
ENV_VARS = {
    "endpoint": "CSI_ENDPOINT",
    "staging_path": "CSI_STAGING_PATH",
    "target_path": "CSI_TARGET_PATH",
    "timeout": "CSI_TIMEOUT",
    "proto_module": "CSI_PROTO_MODULE",
    "secrets_file": "CSI_SECRETS_FILE",
    "test_volume_parameters_file": "CSI_TEST_VOLUME_PARAMETERS",
}

# Calls that accept a secrets map, keyed as in the secrets file
SECRET_CALLS = (
    "CreateVolume",
    "DeleteVolume",
    "ControllerPublishVolume",
    "ControllerUnpublishVolume",
    "NodeStageVolume",
    "NodePublishVolume",
)


@dataclass
class SanityConfig:
    """Inputs for one harness run."""

    endpoint: str | None = None
    staging_path: str = str(DEFAULT_STAGING_PATH)
    target_path: str = str(DEFAULT_TARGET_PATH)
    timeout: float = DEFAULT_TIMEOUT
    proto_module: str = DEFAULT_PROTO_MODULE
    secrets_file: str | None = None
    test_volume_parameters_file: str | None = None
    create_mount_dirs: bool = True

    secrets: dict[str, dict[str, str]] = field(default_factory=dict)
    test_volume_parameters: dict[str, str] = field(default_factory=dict)

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def secrets_for(self, call: str) -> dict[str, str]:
        """Secret map forwarded on ``call`` (empty if none configured)."""
        return dict(self.secrets.get(call, {}))

    def apply(self, source: str, **values: Any) -> None:
        """Override settings, ignoring None values.

        Args:
            source: Label recorded for each overridden key
            values: Settings to override
        """
        for key, value in values.items():
            if value is None:
                continue
            if key not in ENV_VARS and key != "create_mount_dirs":
                raise ConfigError(f"Unknown config key: {key}")
            setattr(self, key, _coerce(key, value))
            self._sources[key] = source

    def validate(self) -> None:
        """Check the settings needed to run scenarios.

        Raises:
            ConfigError: If a required setting is missing or inconsistent.
        """
        if not self.endpoint:
            raise ConfigError(
                f"No plugin endpoint configured. Pass --endpoint or set {ENV_VARS['endpoint']}"
            )
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}")
        if Path(self.staging_path) == Path(self.target_path):
            raise ConfigError("Staging path and target path must differ")


def _coerce(key: str, value: Any) -> Any:
    try:
        if key == "timeout":
            return float(value)
        if key == "create_mount_dirs":
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {key}: {value!r}")
    return str(value)


def get_config_path() -> Path:
    """Get the harness config file path."""
    return CONFIG_FILE


def _read_yaml(path: str | Path, what: str) -> Any:
    try:
        with open(path) as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {what} file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {what} file {path}: {e}")


def load_secrets(path: str | Path) -> dict[str, dict[str, str]]:
    """Load per-call secrets.

    The file maps ``<Call>Secret`` keys (e.g. CreateVolumeSecret) to flat
    string maps.

    Returns:
        Call name -> secret map
    """
    data = _read_yaml(path, "secrets") or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Secrets file {path} must contain a mapping")

    secrets: dict[str, dict[str, str]] = {}
    for key, values in data.items():
        call = str(key).removesuffix("Secret")
        if call not in SECRET_CALLS:
            raise ConfigError(f"Unknown secrets entry in {path}: {key}")
        if not isinstance(values, dict):
            raise ConfigError(f"Secrets entry {key} in {path} must be a mapping")
        secrets[call] = {str(k): str(v) for k, v in values.items()}
    return secrets


def load_volume_parameters(path: str | Path) -> dict[str, str]:
    """Load CreateVolume parameters forwarded verbatim to the plugin."""
    data = _read_yaml(path, "volume parameters") or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Volume parameters file {path} must contain a mapping")
    return {str(k): str(v) for k, v in data.items()}


def load_config(config_path: str | Path | None = None, **overrides: Any) -> SanityConfig:
    """Load harness configuration.

    Precedence (highest to lowest):
    1. Keyword overrides (CLI flags)
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Config file; defaults to ~/.csi-sanity/config.yaml
        overrides: Values from CLI flags (None means not given)

    Returns:
        SanityConfig with secrets and volume parameters loaded

    Raises:
        ConfigError: On unreadable or invalid files.
    """
    config = SanityConfig()

    path = Path(config_path) if config_path else get_config_path()
    if path.exists():
        file_config = _read_yaml(path, "config") or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        config.apply("config file", **file_config)
    elif config_path:
        raise ConfigError(f"Config file not found: {path}")

    config.apply(
        "environment",
        **{key: os.environ.get(env) or None for key, env in ENV_VARS.items()},
    )
    config.apply("flag", **overrides)

    if config.secrets_file:
        config.secrets = load_secrets(config.secrets_file)
    if config.test_volume_parameters_file:
        config.test_volume_parameters = load_volume_parameters(config.test_volume_parameters_file)

    return config
