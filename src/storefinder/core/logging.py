"""
Logging configuration.

The packaged `storefinder/config/logging.yaml` describes handlers and formatters;
the level comes from settings (`STOREFINDER_LOG_LEVEL`) unless a caller passes one
explicitly (the CLI's `--log-level`).
"""

from __future__ import annotations

import copy
import logging.config

from storefinder.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Apply the YAML logging config with the effective level."""
    # The loader result is cached; never mutate the shared dict.
    config = copy.deepcopy(get_logging_config())
    effective = (level or get_settings().app.log_level).upper()

    config.setdefault("root", {})["level"] = effective
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = effective

    logging.config.dictConfig(config)
