"""
Configuration management and loading.

Handles the YAML settings file and environment-provided credentials.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..core.placeholders import DEFAULT_PLACEHOLDERS, PlaceholderTable

DEFAULT_CONFIG_PATH = "query-cost-sync.yaml"


@dataclass(frozen=True)
class OracleConfig:
    """Connection settings for the cost service."""
    base_url: str = ""
    api_version: str = "2024-01"
    path: str = "graphql.json"
    credential_header: str = "X-Access-Token"
    credential_env: str = "COST_SYNC_ACCESS_TOKEN"
    timeout: float = 30.0
    delay: float = 0.5
    workers: int = 1

    def __post_init__(self):
        """Validate numeric settings."""
        if self.timeout <= 0:
            raise ValueError("oracle.timeout must be > 0")
        if self.delay < 0:
            raise ValueError("oracle.delay must be >= 0")
        if self.workers < 1:
            raise ValueError("oracle.workers must be >= 1")


@dataclass(frozen=True)
class ArtifactConfig:
    """Where artifacts live and how their cost is declared."""
    directory: str = "integrations"
    pattern: str = "*.php"
    recursive: bool = False
    cost_accessor: str = "getQueryCost"


@dataclass(frozen=True)
class SyncConfig:
    """Complete cost sync configuration."""
    oracle: OracleConfig = field(default_factory=OracleConfig)
    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    report_path: str = "query_cost_report.csv"
    backup_dir: str = "backups"
    allow_unresolved_placeholders: bool = False
    placeholders: PlaceholderTable = DEFAULT_PLACEHOLDERS

    def credential(self, override: Optional[str] = None) -> Optional[str]:
        """Credential from an explicit override or the configured env variable."""
        if override:
            return override
        return os.environ.get(self.oracle.credential_env) or None


_ORACLE_TYPES = {
    "base_url": str,
    "api_version": str,
    "path": str,
    "credential_header": str,
    "credential_env": str,
    "timeout": (int, float),
    "delay": (int, float),
    "workers": int,
}

_ARTIFACT_TYPES = {
    "directory": str,
    "pattern": str,
    "recursive": bool,
    "cost_accessor": str,
}

_TOP_LEVEL_TYPES = {
    "oracle": dict,
    "artifacts": dict,
    "report_path": str,
    "backup_dir": str,
    "allow_unresolved_placeholders": bool,
    "placeholders": dict,
}


def load_config(path: Optional[str] = None) -> SyncConfig:
    """Load and validate configuration from a YAML file.

    When no path is given, ``query-cost-sync.yaml`` in the working directory
    is used if present; otherwise defaults apply.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated SyncConfig object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        if not Path(DEFAULT_CONFIG_PATH).exists():
            return SyncConfig()
        path = DEFAULT_CONFIG_PATH

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return SyncConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    return parse_config(raw_config)


def parse_config(raw_config: Dict[str, Any]) -> SyncConfig:
    """Build a SyncConfig from already-decoded YAML data.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_section(raw_config, _TOP_LEVEL_TYPES, "config")

    oracle_data = raw_config.get('oracle', {})
    _check_section(oracle_data, _ORACLE_TYPES, "oracle")

    artifacts_data = raw_config.get('artifacts', {})
    _check_section(artifacts_data, _ARTIFACT_TYPES, "artifacts")

    config = SyncConfig(
        oracle=OracleConfig(**oracle_data),
        artifacts=ArtifactConfig(**artifacts_data),
    )

    overrides = {
        key: raw_config[key]
        for key in ('report_path', 'backup_dir', 'allow_unresolved_placeholders')
        if key in raw_config
    }

    placeholders = raw_config.get('placeholders')
    if placeholders:
        for name, value in placeholders.items():
            if not isinstance(value, (str, int)) or isinstance(value, bool):
                raise ValueError(f"Placeholder '{name}' must be a string or integer")
        # Configured tokens extend and override the built-in sample values
        overrides['placeholders'] = DEFAULT_PLACEHOLDERS.merged(
            {str(name): str(value) for name, value in placeholders.items()}
        )

    return replace(config, **overrides)


def _check_section(data: Any, types: Dict[str, Any], path: str) -> None:
    """Reject non-mapping sections, unknown keys and wrongly typed values."""
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    unknown_keys = set(data.keys()) - set(types)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key, expected in types.items():
        if key not in data:
            continue
        value = data[key]
        # YAML booleans must not pass as numbers
        if isinstance(value, bool) and expected is not bool:
            raise ValueError(f"'{key}' in {path} has the wrong type")
        if not isinstance(value, expected):
            raise ValueError(f"'{key}' in {path} has the wrong type")
