"""Shared service layer for the server and CLI."""

from .users import get_user_info, set_user_theme, update_or_create_user

__all__ = [
    "get_user_info",
    "set_user_theme",
    "update_or_create_user",
]
