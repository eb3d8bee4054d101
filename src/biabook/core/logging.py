"""
Logging setup shared by the API, the CLI and the catalog script.

Handlers and formatters live in the packaged `logging.yaml` (a `dictConfig` mapping).
Only the level varies at runtime; it is chosen in this order:
1. an explicit `level` argument (the CLI's `--log-level`)
2. `app.log_level` from settings, which `BIABOOK_LOG_LEVEL` overrides

Named loggers in the YAML (e.g. `httpx` at WARNING) keep their own levels so a DEBUG
run shows BiaBook's decisions without every outgoing request line.
"""

from __future__ import annotations

import copy
import logging.config
from typing import Any

from biabook.config.settings import get_logging_config, get_settings


def build_logging_config(level: str) -> dict[str, Any]:
    """Return a fresh dictConfig with `level` on the root logger and leveled handlers."""
    level = level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {level}")

    # The packaged mapping is cached; never mutate it.
    config = copy.deepcopy(get_logging_config())
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level
    return config


def configure_logging(level: str | None = None) -> None:
    logging.config.dictConfig(build_logging_config(level or get_settings().app.log_level))
