"""
File: utils/__init__.py
Purpose: Utilities package initialization
"""

from .time_parser import parse_fire_at, parse_hour
from .validators import is_valid_recipient, parse_recipients, validate_message

__all__ = [
    'parse_fire_at',
    'parse_hour',
    'is_valid_recipient',
    'parse_recipients',
    'validate_message'
]
