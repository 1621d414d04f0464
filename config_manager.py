"""
Configuration management module for the budget tree engine.

This module handles loading and saving configuration values: validation
limits, canvas layout constants, zoom bounds, connection routing, the
spending floor policy, database location, and logging.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG = {
    'validation': {
        'min_budget': 0.0,
        'max_budget': 1000000.0,
        'min_name_length': 1,
        'max_name_length': 50,
        'amount_decimal_places': 2,
    },
    'layout': {
        'viewport_height': 450,
        'default_total_position': {'x': 360, 'y': 240},
        'child_vertical_offset': 200,
        'child_horizontal_spacing': 180,
        'bank_horizontal_spacing': 200,
        'auto_arrange': True,
    },
    'zoom': {
        'min_scale': 0.3,
        'max_scale': 1.2,
        'step': 0.1,
        'default_scale': 0.5,
    },
    'connections': {
        'gap': 35,
        'line_color': '#6B7280',
    },
    'spending': {
        'strict_floor': False,
    },
    'database': {
        'data_dir': 'data',
        'path': 'budget_tree.db',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
}

CONFIG_FILE = 'config.yaml'


def _merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge overrides on top of a copy of defaults."""
    merged = copy.deepcopy(dict(defaults))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (defaults to config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values
    """
    try:
        path = Path(config_path or CONFIG_FILE)
        if path.exists():
            with open(path, 'r') as f:
                config = yaml.safe_load(f) or {}
        else:
            config = {}

        if not isinstance(config, Mapping):
            logger.warning(f"Configuration in {path} is not a mapping; using defaults")
            config = {}

        merged = _merge(DEFAULT_CONFIG, config)
        validate_config(merged)
        logger.info("Configuration loaded successfully")
        return merged

    except (OSError, yaml.YAMLError, ConfigError) as e:
        logger.error(f"Error loading configuration: {e}", exc_info=True)
        return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to a YAML file, preserving keys already on disk.

    Args:
        config: Configuration dictionary to save
        config_path: Destination path (defaults to config.yaml)

    Returns:
        True if successful, False otherwise
    """
    try:
        path = Path(config_path or CONFIG_FILE)

        existing_config = {}
        if path.exists():
            with open(path, 'r') as f:
                existing_config = yaml.safe_load(f) or {}

        updated = _merge(existing_config, config)

        with open(path, 'w') as f:
            yaml.dump(updated, f, default_flow_style=False)

        logger.info("Configuration saved successfully")
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error saving configuration: {e}", exc_info=True)
        return False


def validate_config(config: Mapping[str, Any]) -> None:
    """
    Check internal consistency of numeric settings.

    Raises:
        ConfigError: If a bound is inverted or a size is not positive
    """
    validation = config.get('validation', {})
    if validation.get('min_budget', 0) > validation.get('max_budget', 0):
        raise ConfigError(
            "validation.min_budget cannot exceed validation.max_budget",
            details={'min_budget': validation.get('min_budget'), 'max_budget': validation.get('max_budget')}
        )
    if validation.get('min_name_length', 1) > validation.get('max_name_length', 1):
        raise ConfigError("validation.min_name_length cannot exceed validation.max_name_length")

    zoom = config.get('zoom', {})
    if not 0 < zoom.get('min_scale', 0) <= zoom.get('max_scale', 0):
        raise ConfigError(
            "zoom.min_scale must be positive and not exceed zoom.max_scale",
            details={'min_scale': zoom.get('min_scale'), 'max_scale': zoom.get('max_scale')}
        )
    if zoom.get('step', 0) <= 0:
        raise ConfigError("zoom.step must be positive", details={'step': zoom.get('step')})


def get_section(config: Optional[Mapping[str, Any]], section: str) -> Dict[str, Any]:
    """
    Return one configuration section with defaults filled in.

    Args:
        config: Optional configuration dictionary (None means defaults)
        section: Top-level section name, e.g. 'zoom'

    Returns:
        Section dictionary
    """
    defaults = DEFAULT_CONFIG.get(section, {})
    if not config:
        return copy.deepcopy(defaults)
    return _merge(defaults, config.get(section) or {})
