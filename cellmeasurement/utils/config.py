"""
Configuration module for the cell measurement pipeline.

Provides centralized defaults, config file loading/saving and validation.

Usage:
    from cellmeasurement.utils.config import load_config, validate_config

    # Load config with defaults (missing keys fall back to DEFAULT_CONFIG)
    config = load_config('/path/to/run_config.json')

    # Override defaults for a single run
    config = create_run_config(threads=8, percentiles=[50, 99])
    validate_config(config, raise_on_error=True)

Environment Variables:
    CELLMEASUREMENT_THREADS: Default number of worker threads, or "auto" for
        get_cpu_worker_count()
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from cellmeasurement.utils.json_utils import atomic_json_dump, load_json
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# DEFAULTS
# =============================================================================

COMPARTMENT_NAMES = ("cell", "nucleus", "cytoplasm", "membrane")
STATISTIC_NAMES = ("mean", "median", "min", "max", "std_dev")


# Share of the machine's cores used when the thread count is "auto"
CPU_UTILIZATION_FRACTION = 0.8


def get_cpu_worker_count(total_cores: Optional[int] = None, fraction: float = CPU_UTILIZATION_FRACTION) -> int:
    """
    Worker threads to use on this machine.

    Args:
        total_cores: Core count; os.cpu_count() when None
        fraction: Share of the cores to use

    Returns:
        int(total_cores * fraction), at least 1
    """
    if total_cores is None:
        total_cores = os.cpu_count() or 1
    return max(1, int(total_cores * fraction))


def _env_threads(default: int = 1) -> int:
    value = os.getenv("CELLMEASUREMENT_THREADS")
    if value is None:
        return default
    if value.strip().lower() == "auto":
        return get_cpu_worker_count()
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring CELLMEASUREMENT_THREADS={value!r} (expected an integer or 'auto')")
        return default


DEFAULT_CONFIG = {
    # Scale of the label masks relative to the full-resolution image
    "downsample_factor": 1.0,
    # Micrometers per pixel, used for shape measurements
    "pixel_size_um": 0.5,

    # ROI matching
    "dist_threshold": 10.0,    # pixels, strict upper bound on centroid distance
    "cell_expansion": 3.0,     # pixels, boundary estimation for unmatched nuclei
    "nucleus_scale": 1.0,      # <= 1 disables the scaled-nucleus constraint
    "resolve_overlaps": True,

    # Measurements
    "skip_measurements": False,
    "percentiles": [5.0, 25.0, 50.0, 75.0, 95.0],
    "statistics": list(STATISTIC_NAMES),
    "compartments": list(COMPARTMENT_NAMES),
    "channel_names": None,

    # Processing
    "threads": _env_threads(),
    "show_progress": False,
}


# Validation constraints for numeric keys
_VALIDATION_RULES: Dict[str, Dict[str, Any]] = {
    "downsample_factor": {"min": 1e-3, "max": 1024.0, "type": float},
    "pixel_size_um": {"min": 1e-6, "max": 1000.0, "type": float},
    "dist_threshold": {"min": 0.0, "max": 1e9, "type": float},
    "cell_expansion": {"min": 0.0, "max": 1e6, "type": float},
    "nucleus_scale": {"min": 0.0, "max": 100.0, "type": float},
    "threads": {"min": 1, "max": 1024, "type": int},
    "percentile": {"min": 0.0, "max": 100.0, "type": float},
}


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


# =============================================================================
# LOADING / SAVING
# =============================================================================

def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """
    Recursively merge override dict into base dict (in-place).

    Nested dicts are merged key by key; all other values (including lists)
    are deep-copied from override.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    **overrides
) -> Dict[str, Any]:
    """
    Load configuration from a JSON file merged over DEFAULT_CONFIG.

    Args:
        config_path: Path to a JSON config file. Missing file or None
            returns the defaults.
        **overrides: Values applied after the file (e.g. from CLI flags).
            None values are ignored.

    Returns:
        Dict with merged configuration

    Raises:
        ConfigValidationError: If the file exists but is not valid JSON
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            try:
                file_config = load_json(config_path)
            except (json.JSONDecodeError, OSError) as e:
                raise ConfigValidationError(f"Could not load config from {config_path}: {e}")
            if not isinstance(file_config, dict):
                raise ConfigValidationError(f"Config file {config_path} must contain a JSON object")
            _deep_merge(config, file_config)
        else:
            logger.warning(f"Config file not found, using defaults: {config_path}")

    _deep_merge(config, {k: v for k, v in overrides.items() if v is not None})
    return config


def save_config(
    config: Dict[str, Any],
    config_path: Union[str, Path],
) -> Path:
    """
    Save configuration to a JSON file.

    Args:
        config: Configuration dict to save
        config_path: Target file path

    Returns:
        Path to saved config file
    """
    return atomic_json_dump(config, config_path, indent=2)


def create_run_config(**kwargs) -> Dict[str, Any]:
    """
    Create a configuration dict for a processing run.

    Args:
        **kwargs: Config overrides applied on top of DEFAULT_CONFIG

    Returns:
        Configuration dict
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config.update(kwargs)
    return config


# =============================================================================
# VALIDATION
# =============================================================================

def _validate_range(
    value: Any,
    key: str,
    min_val: Union[int, float],
    max_val: Union[int, float],
    expected_type: type,
) -> List[str]:
    """
    Validate a single value is within expected range and type.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    # bool is an int subclass but never a valid numeric setting
    if isinstance(value, bool):
        errors.append(f"{key}: expected {expected_type.__name__}, got bool")
        return errors

    if expected_type == float:
        if not isinstance(value, (int, float)):
            errors.append(f"{key}: expected numeric type, got {type(value).__name__}")
            return errors
    elif not isinstance(value, expected_type):
        errors.append(f"{key}: expected {expected_type.__name__}, got {type(value).__name__}")
        return errors

    if value < min_val or value > max_val:
        errors.append(f"{key}: value {value} out of range [{min_val}, {max_val}]")

    return errors


def _validate_choices(values: Any, key: str, choices: Tuple[str, ...]) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return [f"{key}: expected list, got {type(values).__name__}"]
    errors = []
    for value in values:
        if not isinstance(value, str) or value.lower() not in choices:
            errors.append(f"{key}: unknown value {value!r} (expected one of {', '.join(choices)})")
    return errors


def validate_config(
    config: Optional[Dict[str, Any]] = None,
    raise_on_error: bool = False
) -> Dict[str, Union[bool, List[str]]]:
    """
    Validate a configuration dictionary against expected types and ranges.

    Args:
        config: Config dict (like DEFAULT_CONFIG). If None, validates
            DEFAULT_CONFIG.
        raise_on_error: If True, raise ConfigValidationError listing all
            problems instead of returning them.

    Returns:
        Dict with 'valid' (bool) and 'errors' (list of messages)

    Raises:
        ConfigValidationError: If raise_on_error is True and validation fails
    """
    if config is None:
        config = DEFAULT_CONFIG

    errors: List[str] = []

    for key in ("downsample_factor", "pixel_size_um", "dist_threshold",
                "cell_expansion", "nucleus_scale", "threads"):
        if key not in config:
            continue
        rule = _VALIDATION_RULES[key]
        errors.extend(_validate_range(config[key], key, rule["min"], rule["max"], rule["type"]))

    percentiles = config.get("percentiles", [])
    if not isinstance(percentiles, (list, tuple)):
        errors.append(f"percentiles: expected list, got {type(percentiles).__name__}")
    else:
        rule = _VALIDATION_RULES["percentile"]
        for i, p in enumerate(percentiles):
            errors.extend(_validate_range(p, f"percentiles[{i}]", rule["min"], rule["max"], rule["type"]))

    errors.extend(_validate_choices(config.get("compartments", []), "compartments", COMPARTMENT_NAMES))
    errors.extend(_validate_choices(config.get("statistics", []), "statistics", STATISTIC_NAMES))

    channel_names = config.get("channel_names")
    if channel_names is not None and (
        not isinstance(channel_names, (list, tuple))
        or not all(isinstance(name, str) for name in channel_names)
    ):
        errors.append("channel_names: expected list of strings or null")

    result = {"valid": not errors, "errors": errors}

    if errors and raise_on_error:
        raise ConfigValidationError(
            "Configuration validation failed:\n  " + "\n  ".join(errors)
        )

    return result
