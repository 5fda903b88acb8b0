#!/usr/bin/env python3

"""
Configuration management for the transcript mapping pipeline.

Centralized configuration with support for file-based configuration
and environment variable overrides.
"""

import os
import json
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any
from .exceptions import ConfigurationError

# Optional YAML support
try:
    import yaml
    YAML_AVAILABLE = True
except ImportError:
    YAML_AVAILABLE = False


def _to_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes')


@dataclass
class PipelineConfig:
    """Centralized configuration for the transcript mapping pipeline."""

    # Input / output
    annotation_file: str = ""
    input_file: str = ""
    output_file: str = ""
    log_file: Optional[str] = None

    # Annotation options
    fix_chr_names: bool = False

    # Classification options
    match_strand: bool = True

    # Output tags
    map_tag: str = "YE"
    gene_tag: str = "GE"
    cell_barcode_tag: str = "BC"
    molecular_barcode_tag: str = "OX"

    # Read name layout
    barcode_length: int = 0
    umi_length: int = 0

    # Progress reporting
    report_interval_seconds: float = 180.0

    # Performance settings
    memory_limit_mb: int = 4096
    memory_check_interval: int = 1000000
    enable_memory_monitoring: bool = True

    # Advanced settings
    debug_mode: bool = False

    @classmethod
    def from_file(cls, config_path: str) -> 'PipelineConfig':
        """Load configuration from file (JSON or YAML)."""
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        is_yaml = config_path.lower().endswith(('.yaml', '.yml'))
        if is_yaml and not YAML_AVAILABLE:
            raise ConfigurationError("PyYAML not installed but YAML config provided")

        try:
            with open(config_path, 'r') as f:
                if is_yaml:
                    try:
                        config_data = yaml.safe_load(f)
                    except yaml.YAMLError as e:
                        raise ConfigurationError(f"Invalid YAML configuration file format: {e}")
                else:
                    config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid configuration file format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PipelineConfig':
        """Create configuration from dictionary."""
        # Filter out unknown keys
        known_keys = set(cls.__dataclass_fields__.keys())
        filtered_dict = {k: v for k, v in config_dict.items() if k in known_keys}

        try:
            return cls(**filtered_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration parameters: {e}")

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        """Load configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mappings = {
            'PIPELINE_ANNOTATION_FILE': ('annotation_file', str),
            'PIPELINE_FIX_CHR_NAMES': ('fix_chr_names', _to_bool),
            'PIPELINE_MATCH_STRAND': ('match_strand', _to_bool),
            'PIPELINE_BARCODE_LENGTH': ('barcode_length', int),
            'PIPELINE_UMI_LENGTH': ('umi_length', int),
            'PIPELINE_REPORT_INTERVAL': ('report_interval_seconds', float),
            'PIPELINE_MEMORY_LIMIT_MB': ('memory_limit_mb', int),
            'PIPELINE_MEMORY_CHECK_INTERVAL': ('memory_check_interval', int),
            'PIPELINE_DEBUG_MODE': ('debug_mode', _to_bool),
        }

        for env_var, (field_name, converter) in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value:
                try:
                    setattr(config, field_name, converter(env_value))
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid environment variable {env_var}: {e}")

        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_to_file(self, config_path: str) -> None:
        """Save configuration to file."""
        config_dict = self.to_dict()
        is_yaml = config_path.lower().endswith(('.yaml', '.yml'))
        if is_yaml and not YAML_AVAILABLE:
            raise ConfigurationError("PyYAML not installed but YAML output requested")

        try:
            with open(config_path, 'w') as f:
                if is_yaml:
                    yaml.safe_dump(config_dict, f, default_flow_style=False)
                else:
                    json.dump(config_dict, f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Error saving configuration: {e}")

    def validate(self) -> None:
        """Validate configuration parameters."""
        for tag_field in ('map_tag', 'gene_tag', 'cell_barcode_tag', 'molecular_barcode_tag'):
            tag = getattr(self, tag_field)
            if not isinstance(tag, str) or len(tag) != 2:
                raise ConfigurationError(f"{tag_field} must be a two character tag, got {tag!r}")

        if self.barcode_length < 0:
            raise ConfigurationError("barcode_length must be >= 0")

        if self.umi_length < 0:
            raise ConfigurationError("umi_length must be >= 0")

        if self.report_interval_seconds <= 0:
            raise ConfigurationError("report_interval_seconds must be > 0")

        if self.memory_limit_mb < 100:
            raise ConfigurationError("memory_limit_mb must be >= 100")

        if self.memory_check_interval < 1:
            raise ConfigurationError("memory_check_interval must be >= 1")

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()


def load_config(config_path: Optional[str] = None,
                use_env: bool = True) -> PipelineConfig:
    """
    Load configuration with priority: file > environment > defaults.

    Args:
        config_path: Path to configuration file (optional)
        use_env: Whether to load environment variables

    Returns:
        PipelineConfig: Loaded configuration
    """
    # Start with defaults
    config = PipelineConfig()

    # Override with environment variables if requested
    if use_env:
        env_config = PipelineConfig.from_env()
        for field_name in PipelineConfig.__dataclass_fields__:
            env_value = getattr(env_config, field_name)
            if env_value != getattr(config, field_name):
                setattr(config, field_name, env_value)

    # Override with file configuration if provided
    if config_path:
        file_config = PipelineConfig.from_file(config_path)
        for field_name in PipelineConfig.__dataclass_fields__:
            setattr(config, field_name, getattr(file_config, field_name))

    return config
