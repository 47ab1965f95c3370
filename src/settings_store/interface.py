"""The typed operation contract shared by the server and the client proxy.

Both sides expose the same data interface. The server adds ``initialize``;
the client adds the local-only ``shutdown``. Forwarded calls are named by
:class:`Operation` values, so a local-only client name must never appear
there.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Optional, Protocol, Union

from .models import Theme


class Operation(str, Enum):
    """Operations that may be forwarded across the process boundary."""
    CLOSE = "close"
    REMOVE_DB = "remove_db"
    UPDATE_OR_CREATE_USER = "update_or_create_user"
    GET_USER_INFO = "get_user_info"
    SET_USER_THEME = "set_user_theme"


# Client-side only; intercepted before anything is forwarded
LOCAL_ONLY_OPERATIONS = frozenset({"shutdown"})

_collisions = LOCAL_ONLY_OPERATIONS & {op.value for op in Operation}
if _collisions:
    raise RuntimeError(f"Local-only operations shadow forwarded ones: {sorted(_collisions)}")


class DataInterface(Protocol):
    """Operations available on both sides of the boundary."""

    def close(self) -> Awaitable[None]: ...

    def remove_db(self) -> Awaitable[None]: ...

    def update_or_create_user(self, attributes: dict[str, Any]) -> Awaitable[None]: ...

    def get_user_info(self) -> Awaitable[Optional[dict[str, Any]]]: ...

    def set_user_theme(self, theme: Union[Theme, str]) -> Awaitable[bool]: ...


class ServerInterface(DataInterface, Protocol):
    """Server-side contract: runs where the file may be opened directly."""

    def initialize(
        self,
        config_dir: Union[str, Path],
        key: str,
        logger: Optional[logging.Logger] = None,
    ) -> Awaitable[None]: ...


class ClientInterface(DataInterface, Protocol):
    """Client-side contract: forwards everything except shutdown."""

    def shutdown(self) -> Awaitable[None]: ...
