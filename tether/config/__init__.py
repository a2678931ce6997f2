"""
Tether Configuration Module
"""

from .settings import Settings, get_settings, reload_settings

__all__ = ['Settings', 'get_settings', 'reload_settings']
