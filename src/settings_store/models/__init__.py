"""Data models for settings-store."""

from .user import USER_ID_KEY, Theme, UserRecord

__all__ = ["USER_ID_KEY", "Theme", "UserRecord"]
