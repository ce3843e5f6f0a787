"""
File: features/__init__.py
Purpose: Features package initialization
"""

from .alerts import AlertSystem
from .one_time_scheduler import OneTimeScheduler
from .recurring_schedules import RecurringScheduler

__all__ = ['AlertSystem', 'OneTimeScheduler', 'RecurringScheduler']
