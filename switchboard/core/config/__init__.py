"""Configuration package: schema, loader and test helpers."""

from switchboard.core.config.config import Config
from switchboard.core.config.validation import ConfigValueError

__all__ = ["Config", "ConfigValueError"]
