"""Configuration module for replyclaw."""

from replyclaw.config.loader import load_config, get_config_path
from replyclaw.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
