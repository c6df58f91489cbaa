"""
Configuration models for kig core components.
"""
from .settings import KigSettings, settings
from .poller_config import PollerConfig

__all__ = [
    "KigSettings",
    "PollerConfig",
    "settings",
]
