"""Duplicate alert notifications (e-mail, Slack)."""

from .service import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
