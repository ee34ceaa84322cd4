"""
API Routers package.
"""

from . import email, events, notifications, scheduler

__all__ = ["email", "events", "notifications", "scheduler"]
