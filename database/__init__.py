"""
File: database/__init__.py
Purpose: Database package initialization
"""

from .db_manager import DatabaseManager
from .json_store import JsonFileStore
from .store import DatabaseStore

__all__ = ['DatabaseManager', 'DatabaseStore', 'JsonFileStore']
