"""Configuration management."""

from hostexec.config.manager import ConfigManager
from hostexec.config.schema import HostexecConfig

__all__ = ["ConfigManager", "HostexecConfig"]
