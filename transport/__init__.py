"""
File: transport/__init__.py
Purpose: Transport package initialization
"""

from .telegram_transport import TelegramTransport

__all__ = ['TelegramTransport']
