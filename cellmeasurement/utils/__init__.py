"""
Utility modules for the cell measurement pipeline.

Provides:
- Configuration management
- Logging utilities
- JSON helpers
- Schema validation for exported files (requires pydantic)
"""

from .config import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    load_config,
    save_config,
    create_run_config,
    validate_config,
    get_cpu_worker_count,
)

from .logging import (
    get_logger,
    setup_logging,
    log_run_config,
    ProcessingTimer,
)

from .json_utils import (
    sanitize_for_json,
    atomic_json_dump,
    load_json,
    dump_feature_collection,
)

# Schemas require pydantic - import separately if needed
# from cellmeasurement.utils.schemas import validate_geojson_file

__all__ = [
    # Config
    'DEFAULT_CONFIG',
    'ConfigValidationError',
    'load_config',
    'save_config',
    'create_run_config',
    'validate_config',
    'get_cpu_worker_count',
    # Logging
    'get_logger',
    'setup_logging',
    'log_run_config',
    'ProcessingTimer',
    # JSON
    'sanitize_for_json',
    'atomic_json_dump',
    'load_json',
    'dump_feature_collection',
]
