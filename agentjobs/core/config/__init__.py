"""Configuration module."""

from agentjobs.core.config.loader import load_config
from agentjobs.core.config.schema import Config

__all__ = ["Config", "load_config"]
