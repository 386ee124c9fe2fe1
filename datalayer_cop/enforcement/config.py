"""Configuration system for dataLayer enforcement.

This module provides the configuration models consumed when the interceptor
is installed, plus YAML loading with environment-variable overrides and a
non-fatal validation pass that reports configuration warnings.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .casing import PREFERRED_CASES, is_known_case
from .catalog import PREDEFINED_MARKER, rule_catalog
from .errors import CopConfigurationError
from .models import Rule

RULE_KEYS = frozenset(
    set(Rule.model_fields)
    | {field.alias for field in Rule.model_fields.values() if field.alias}
    | {PREDEFINED_MARKER}
)


class ReportConfig(BaseModel):
    """Where and when rule failures are reported."""

    model_config = {"frozen": True}

    to_url: Optional[str] = Field(
        default=None,
        description="HTTPS endpoint receiving redacted violation reports (None disables)"
    )
    to_data_layer: bool = Field(
        default=False,
        description="Push a gtm.pageError diagnostic event onto the queue"
    )
    only: List[str] = Field(
        default_factory=list,
        description="Rule severities that trigger reporting"
    )

    @field_validator('to_url', mode='before')
    @classmethod
    def validate_to_url(cls, v):
        """Accept ``false`` / empty values from YAML as disabled."""
        if v is False or v == "":
            return None
        return v

    @property
    def url_enabled(self) -> bool:
        return self.to_url is not None

    def triggers(self, severity: Optional[str]) -> bool:
        """Check if a failing rule with this severity should be reported."""
        return severity is not None and severity in self.only


class CopConfig(BaseModel):
    """Root configuration, immutable once constructed."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    data_layer: str = Field(
        default="dataLayer",
        description="Name of the shared queue on the hosting page"
    )
    namespace: str = Field(
        default="datalayercop",
        description="Key used for the startup event and diagnostic records"
    )
    preferred_case: str = Field(
        default="snake",
        description="One of 'snake', 'camel' or 'pascal'"
    )
    report: ReportConfig = Field(default_factory=ReportConfig)
    rules: List[Any] = Field(
        default_factory=list,
        description="Ordered rules: full rule mappings, Rule objects or {'predefined': key, ...}"
    )

    @field_validator('rules', mode='before')
    @classmethod
    def validate_rules(cls, v):
        """Rules must be a list of mappings or Rule instances."""
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            raise ValueError("rules must be a list")
        for index, entry in enumerate(v):
            if not isinstance(entry, (Rule, Mapping)):
                raise ValueError(f"rules[{index}] must be a mapping or Rule, got {type(entry).__name__}")
        return list(v)

    @property
    def has_rules(self) -> bool:
        return bool(self.rules)


class CopConfigManager:
    """Loads configuration from YAML files and environment variables."""

    def __init__(self, config_path: str | Path | None = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: CopConfig | None = None

    def load_config(self, config_path: str | Path | None = None) -> CopConfig:
        """Load configuration from file.

        Args:
            config_path: Optional override for config file path

        Returns:
            Loaded and validated configuration

        Raises:
            CopConfigurationError: If the file cannot be read or is invalid
        """
        if config_path:
            self.config_path = Path(config_path)

        config_data: Dict[str, Any] = {}

        if self.config_path:
            if not self.config_path.exists():
                raise CopConfigurationError(f"Config file not found: {self.config_path}")
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise CopConfigurationError(f"Failed to load config from {self.config_path}: {e}")

            if not isinstance(config_data, dict):
                raise CopConfigurationError(
                    f"Config root must be a mapping: {self.config_path}"
                )

        self._merge_config(config_data, self._load_environment_variables())

        try:
            self._config = CopConfig(**config_data)
        except ValidationError as e:
            raise CopConfigurationError(f"Invalid DataLayer Cop configuration: {e}")

        return self._config

    def get_config(self) -> CopConfig:
        """Get current configuration, loading defaults if needed."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration overrides from environment variables."""
        env_config: Dict[str, Any] = {}

        if env_queue := os.getenv('DATALAYER_COP_QUEUE'):
            env_config['data_layer'] = env_queue

        if env_case := os.getenv('DATALAYER_COP_PREFERRED_CASE'):
            env_config['preferred_case'] = env_case

        if env_url := os.getenv('DATALAYER_COP_REPORT_URL'):
            env_config.setdefault('report', {})['to_url'] = env_url

        env_to_queue = os.getenv('DATALAYER_COP_REPORT_TO_DATALAYER')
        if env_to_queue is not None:
            env_config.setdefault('report', {})['to_data_layer'] = env_to_queue.lower() == 'true'

        if env_only := os.getenv('DATALAYER_COP_REPORT_ONLY'):
            env_config.setdefault('report', {})['only'] = [
                s.strip() for s in env_only.split(',') if s.strip()
            ]

        return env_config

    def _merge_config(self, base_config: Dict[str, Any], override_config: Dict[str, Any]) -> None:
        """Deep merge configuration dictionaries."""
        for key, value in override_config.items():
            if key in base_config and isinstance(base_config[key], dict) and isinstance(value, dict):
                self._merge_config(base_config[key], value)
            else:
                base_config[key] = value


def default_config_dict() -> Dict[str, Any]:
    """Starter configuration enabling every predefined rule."""
    return {
        'data_layer': 'dataLayer',
        'namespace': 'datalayercop',
        'preferred_case': 'snake',
        'report': {
            'to_url': None,
            'to_data_layer': True,
            'only': ['error'],
        },
        'rules': [
            {'predefined': 'event_property_exists', 'severity': 'error'},
            {'predefined': 'event_is_namespaced', 'severity': 'warn'},
            {'predefined': 'payload_properties_are_preferred_case', 'severity': 'warn'},
            {'predefined': 'event_is_preferred_case_after_namespace', 'severity': 'warn'},
        ],
    }


def create_default_config(output_path: str | Path) -> Path:
    """Write the starter configuration as YAML."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(default_config_dict(), f, default_flow_style=False, sort_keys=False, indent=2)

    return output_path


def validate_config(config: CopConfig) -> List[str]:
    """Collect non-fatal configuration warnings.

    Returns:
        Human-readable warnings (empty if the configuration looks sound)
    """
    # Imported here to keep config importable without the reporting stack
    from .reporting import is_valid_url

    warnings: List[str] = []

    if not config.has_rules:
        warnings.append("No rules defined - the queue will not be intercepted")

    if not is_known_case(config.preferred_case):
        warnings.append(
            f"Unrecognized preferred_case {config.preferred_case!r} "
            f"(expected one of {', '.join(PREFERRED_CASES)})"
        )

    if config.report.url_enabled and not is_valid_url(config.report.to_url):
        warnings.append(f"Report URL is not a valid https URL: {config.report.to_url}")

    reporting_enabled = config.report.url_enabled or config.report.to_data_layer
    if reporting_enabled and not config.report.only:
        warnings.append("Reporting is enabled but report.only is empty - nothing will be reported")

    for index, entry in enumerate(config.rules):
        if isinstance(entry, Rule):
            continue
        key = entry.get(PREDEFINED_MARKER)
        if key is not None and not rule_catalog.is_registered(key):
            warnings.append(f"rules[{index}] references unknown predefined rule {key!r}")
        elif key is None and 'assert' not in entry and 'predicate' not in entry:
            warnings.append(f"rules[{index}] has no predicate and will always pass")

        unknown = sorted(str(k) for k in entry if k not in RULE_KEYS)
        if unknown:
            warnings.append(f"rules[{index}] has unrecognized keys: {', '.join(unknown)}")

    return warnings


# Global configuration manager instance
cop_config_manager = CopConfigManager()


def get_cop_config() -> CopConfig:
    """Get current DataLayer Cop configuration."""
    return cop_config_manager.get_config()


def load_cop_config(config_path: str | Path) -> CopConfig:
    """Load DataLayer Cop configuration from specified path."""
    return cop_config_manager.load_config(config_path)
