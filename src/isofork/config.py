"""Configuration loading and logging setup.

``ForkConfig`` values come from an optional YAML file (``--isofork-config``
or the ``isofork_config`` ini key) and are installed process-wide by the
pytest plugin. Children inherit the same file through the forwarded harness
arguments, so driver and child agree on settings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from isofork.models import ForkConfig

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"

_current: ForkConfig | None = None


def load_config(path: str, **overrides: Any) -> ForkConfig:
    """Load a ``ForkConfig`` from a YAML mapping.

    Args:
        path: File path to the YAML file.
        **overrides: Field values that take precedence over the file.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not parse to a mapping.
        pydantic.ValidationError: If a field value is invalid.
    """
    file_path = Path(path)
    if not file_path.exists():
        msg = f"isofork config file not found: {path}"
        raise FileNotFoundError(msg)

    with open(file_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"isofork config file must contain a YAML mapping, got {type(data).__name__}"
        raise ValueError(msg)

    data.update(overrides)
    return ForkConfig(**data)


def current_config() -> ForkConfig:
    """Return the installed configuration, or defaults if none was installed."""
    global _current
    if _current is None:
        _current = ForkConfig()
    return _current


def install_config(config: ForkConfig | None) -> None:
    """Install *config* process-wide; ``None`` restores defaults."""
    global _current
    _current = config


def configure_logging(config: ForkConfig) -> None:
    """Configure the ``"isofork"`` logger.

    Adds a console handler and an optional file handler. Idempotent:
    repeated calls do not duplicate handlers.

    Args:
        config: Configuration providing ``log_level`` and optional ``log_file``.
    """
    fork_logger = logging.getLogger("isofork")
    fork_logger.setLevel(getattr(logging, config.log_level.upper(), logging.WARNING))

    # FileHandler subclasses StreamHandler
    if not any(
        type(h) is logging.StreamHandler for h in fork_logger.handlers
    ):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(_LOG_FORMAT))
        fork_logger.addHandler(console)

    if config.log_file is not None:
        target = str(Path(config.log_file).resolve())
        has_file = any(
            isinstance(h, logging.FileHandler)
            and getattr(h, "baseFilename", None) == target
            for h in fork_logger.handlers
        )
        if not has_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            fork_logger.addHandler(file_handler)
