"""
Database module for the Firefly bot.

Structure:
- base.py: Base repository with connection management and schema
- sessions.py: Session store for in-progress conversations
"""

from .base import BaseRepository
from .sessions import SessionRepository

__all__ = [
    "BaseRepository",
    "SessionRepository",
]
