"""Configuration management for the save relocator."""

from .settings import ConfigurationError, RelocatorConfig, load_config

__all__ = ["RelocatorConfig", "ConfigurationError", "load_config"]
