"""
Configuration for nshot
"""

from .database import Database
from .settings import Settings, load_settings

__all__ = ['Database', 'Settings', 'load_settings']
