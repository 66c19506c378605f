"""
Configuration module for DrunkardMob.

This module provides configuration loading and validation utilities.
"""

from pathlib import Path
import yaml
from typing import Dict, Any, Optional


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, loads default.yaml

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        config_path = Path(__file__).parent / "default.yaml"
    else:
        config_path = Path(config_path)

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return config


def get_default_config() -> Dict[str, Any]:
    """Get default configuration dictionary."""
    return load_config()


def validate_job_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the job parameters of a configuration.

    Args:
        config: Configuration dictionary

    Returns:
        The same configuration

    Raises:
        ValueError: If a parameter is missing or out of range
    """
    def get(section: str, key: str):
        try:
            return config[section][key]
        except (KeyError, TypeError):
            raise ValueError(f"Missing config key: {section}.{key}") from None

    checks = [
        ('walks', 'num_sources', lambda v: isinstance(v, int) and v > 0, "a positive integer"),
        ('walks', 'walks_per_source', lambda v: isinstance(v, int) and v > 0, "a positive integer"),
        ('walks', 'max_hops', lambda v: isinstance(v, int) and v >= 0, "a non-negative integer"),
        ('walks', 'first_source', lambda v: isinstance(v, int) and v >= 0, "a non-negative integer"),
        ('walks', 'reset_probability', lambda v: isinstance(v, (int, float)) and 0 <= v < 1, "in [0, 1)"),
        ('engine', 'window_size', lambda v: isinstance(v, int) and v > 0, "a positive integer"),
        ('delivery', 'batch_size', lambda v: isinstance(v, int) and v > 0, "a positive integer"),
        ('delivery', 'backlog_divisor', lambda v: isinstance(v, int) and v >= 1, "an integer >= 1"),
        ('delivery', 'poll_interval', lambda v: isinstance(v, (int, float)) and v > 0, "positive"),
        ('delivery', 'admission_poll', lambda v: isinstance(v, (int, float)) and v > 0, "positive"),
        ('companion', 'buffer_limit', lambda v: isinstance(v, int) and v > 0, "a positive integer"),
    ]
    for section, key, ok, expected in checks:
        value = get(section, key)
        if isinstance(value, bool) or not ok(value):
            raise ValueError(f"{section}.{key} must be {expected}, got {value!r}")

    max_queued = config['delivery'].get('max_queued_batches')
    if max_queued is not None and (not isinstance(max_queued, int) or max_queued < 1):
        raise ValueError(
            f"delivery.max_queued_batches must be a positive integer or null, got {max_queued!r}"
        )

    top_n = config['companion'].get('top_n')
    if top_n is not None and (not isinstance(top_n, int) or top_n <= 0):
        raise ValueError(f"companion.top_n must be a positive integer or null, got {top_n!r}")

    return config


__all__ = ['load_config', 'get_default_config', 'validate_job_config']
