"""
statement_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``EngineConfiguration``
    (event mappings, code remap tables, thresholds, statement templates)
    that callers pass explicitly into engines and services.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``statement_kernel`` and below ``statement_engines`` /
    ``statement_modules``.  The kernel MUST NEVER import from here.

Failure modes:
    - ``InvalidConfigurationError`` -- the set directory does not exist or
      fails validation.
    - ``yaml.YAMLError`` / ``KeyError`` -- malformed YAML content.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STATEMENT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each generated statement to the configuration that
    governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from statement_config.loader import load_configuration
from statement_config.schema import EngineConfiguration
from statement_config.validator import validate_configuration
from statement_kernel.exceptions import InvalidConfigurationError

_logger = logging.getLogger("statement_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = ["EngineConfiguration", "get_active_config"]


def get_active_config(
    config_id: str = "default",
    config_dir: Path | None = None,
) -> EngineConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_id: Name of the configuration set directory.
        config_dir: Override path to the configuration sets directory.
            Defaults to statement_config/sets/.

    Returns:
        A validated, frozen EngineConfiguration.

    Raises:
        InvalidConfigurationError: If the set is missing or invalid.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / config_id
    if not (set_dir / "root.yaml").is_file():
        raise InvalidConfigurationError(
            config_id, f"no root.yaml under {set_dir}"
        )

    config = load_configuration(set_dir)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise InvalidConfigurationError(
            config_id, "; ".join(validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})

    _logger.info(
        "STATEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "STATEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "template_count": len(config.templates),
            "event_mapping_count": len(config.event_mappings),
        },
    )

    return config
