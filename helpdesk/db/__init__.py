"""Database models and utilities."""

from .models import CommentTable, TicketTable, UserTable, ensure_datetime

__all__ = [
    "CommentTable",
    "TicketTable",
    "UserTable",
    "ensure_datetime",
]
