"""
Configuration package for audiomirror

Settings are loaded from YAML, .env and AUDIOMIRROR_* environment variables
and accessed through a lazily created singleton:

    from audiomirror.config import get_settings

    settings = get_settings()
"""

from .settings import get_settings, reload_settings, Settings

__all__ = [
    'get_settings',      # Factory function for singleton settings access
    'reload_settings',   # Re-read settings from files and environment
    'Settings',          # Settings class for direct instantiation
]
