"""Data models for vault contents.

This module provides typed Python classes for the records decoded from the
vault blob: accounts and shared folders.
"""

from .account import Account, AccountField
from .share import SharedFolder

__all__ = [
    "Account",
    "AccountField",
    "SharedFolder",
]
