"""Configuration management for rokurelay.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides, including the bare
``ROKU_IP`` variable for the initial downstream target.
"""

from rokurelay.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
