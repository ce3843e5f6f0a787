"""
File: core/__init__.py
Purpose: Core logic package initialization
"""

from .rate_limiter import SlidingWindowRateLimiter
from .connection_supervisor import ConnectionSupervisor
from .sender import DeliveryCoordinator
from .scheduler_core import SchedulerCore

__all__ = ['SlidingWindowRateLimiter', 'ConnectionSupervisor', 'DeliveryCoordinator', 'SchedulerCore']
