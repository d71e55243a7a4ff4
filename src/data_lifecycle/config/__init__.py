"""Configuration management: environment/TOML settings and engine config.

Usage:
    >>> from data_lifecycle.config import load_settings, EngineConfig
"""

from data_lifecycle.config.loader import LifecycleSettings, load_settings
from data_lifecycle.config.models import AdminAccount, EngineConfig, EngineName

__all__ = [
    "load_settings",
    "LifecycleSettings",
    "EngineConfig",
    "EngineName",
    "AdminAccount",
]
