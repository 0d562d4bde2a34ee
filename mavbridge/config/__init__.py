"""Configuration helpers for the MAVLink bridge daemon."""

from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
from .settings import RuntimeConfig, get_default_config, load_runtime_config

__all__ = ["RuntimeConfig", "get_default_config", "load_runtime_config"]
