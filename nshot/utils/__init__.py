"""
Utility functions and helpers for nshot
"""

from .identifiers import generate_entry_id, validate_entry_id
from .locks import KeyedLocks

__all__ = ['generate_entry_id', 'validate_entry_id', 'KeyedLocks']
