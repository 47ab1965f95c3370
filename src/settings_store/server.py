"""Server-side access interface: the process that owns the encrypted file.

A :class:`SqlServer` holds at most one open :class:`EncryptedHandle`. Build
one per process at startup and hand it to whatever serves clients (see
:mod:`settings_store.channels` and :mod:`settings_store.mcp_server`).

Usage:
    server = SqlServer()
    await server.initialize(config_dir, key)
    await server.update_or_create_user({"name": "Ada", "theme": "dark"})
    await server.close()
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from sqlcipher3 import dbapi2 as sqlcipher

from .config import database_files, database_path
from .db import EncryptedHandle, open_and_migrate, validate_key
from .db.connection import Connect
from .errors import (
    AlreadyInitialized,
    InvalidArgument,
    NoFilePathKnown,
    NotInitialized,
    StorageError,
    StorageOpenError,
    UnknownOperation,
)
from .interface import Operation
from .models import Theme
from .services import users


class HandleState(Enum):
    """Lifecycle of the server's handle."""
    UNOPENED = "unopened"
    OPENING = "opening"
    OPEN = "open"
    CLOSED = "closed"


class SqlServer:
    """Concrete ServerInterface backed by one encrypted SQLite file."""

    def __init__(self, logger: Optional[logging.Logger] = None, connect: Optional[Connect] = None):
        """Initialize the server without opening anything.

        Args:
            logger: Logger for lifecycle messages (default: module logger)
            connect: Driver connect function (default: sqlcipher3 connect)
        """
        self.logger = logger or logging.getLogger(__name__)
        self._connect = connect
        self._handle: Optional[EncryptedHandle] = None
        self._database_path: Optional[Path] = None
        self.state = HandleState.UNOPENED
        self._operations: dict[Operation, Callable[..., Awaitable[Any]]] = {
            Operation.CLOSE: self.close,
            Operation.REMOVE_DB: self.remove_db,
            Operation.UPDATE_OR_CREATE_USER: self.update_or_create_user,
            Operation.GET_USER_INFO: self.get_user_info,
            Operation.SET_USER_THEME: self.set_user_theme,
        }

    @property
    def database_path(self) -> Optional[Path]:
        return self._database_path

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self,
        config_dir: Union[str, Path],
        key: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Open the encrypted database inside ``config_dir``.

        Raises:
            AlreadyInitialized: If a handle is already open
            InvalidArgument: If config_dir or key is empty
            InvalidKey: If the key has characters outside [0-9A-Za-z]
            StorageOpenError: If opening, keying or migrating fails
        """
        if self._handle is not None:
            raise AlreadyInitialized("initialize: Already initialized!")
        if not config_dir:
            raise InvalidArgument("initialize: configDir is required!")
        if not key:
            raise InvalidArgument("initialize: key is required!")
        validate_key(key)

        if logger is not None:
            self.logger = logger

        self.state = HandleState.OPENING
        path = database_path(config_dir)
        self._database_path = path

        try:
            path.parent.mkdir(mode=0o777, parents=True, exist_ok=True)
            handle = open_and_migrate(path, key, self.logger, self._connect)
        except OSError as e:
            self.state = HandleState.CLOSED
            raise StorageOpenError(f"initialize: Cannot create {path.parent}", e) from e
        except Exception:
            self.state = HandleState.CLOSED
            raise

        self._handle = handle
        self.state = HandleState.OPEN

    async def close(self) -> None:
        """Optimize and close the handle. No-op when nothing is open."""
        handle = self._handle
        if handle is None:
            return

        try:
            handle.optimize()
        except sqlcipher.Error as e:
            self.logger.warning("close: PRAGMA optimize failed: %s", e)

        self._handle = None
        self.state = HandleState.CLOSED
        try:
            handle.close()
        except sqlcipher.Error as e:
            raise StorageError("close: Failed to close database", e) from e

    async def remove_db(self) -> None:
        """Close the handle if open, then delete the database and its side files.

        Raises:
            NoFilePathKnown: If initialize() never ran
            StorageError: If a file cannot be deleted
        """
        if self._handle is not None:
            try:
                self._handle.close()
            except sqlcipher.Error as e:
                self.logger.error("removeDB: Failed to close database: %s", e, exc_info=True)
            self._handle = None
            self.state = HandleState.CLOSED

        if self._database_path is None:
            raise NoFilePathKnown("removeDB: Cannot erase database without a databaseFilePath!")

        self.logger.warning("removeDB: Removing all database files")
        for file_path in database_files(self._database_path):
            try:
                file_path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"removeDB: Failed to delete {file_path}", e) from e

    def get_instance(self) -> EncryptedHandle:
        """Return the open handle.

        Raises:
            NotInitialized: If no handle is open
        """
        if self._handle is None:
            raise NotInitialized("getInstance: globalInstance not set!")
        return self._handle

    # ------------------------------------------------------------------
    # User
    # ------------------------------------------------------------------

    async def update_or_create_user(self, attributes: dict[str, Any]) -> None:
        users.update_or_create_user(self.get_instance(), attributes)

    async def get_user_info(self) -> Optional[dict[str, Any]]:
        return users.get_user_info(self.get_instance())

    async def set_user_theme(self, theme: Union[Theme, str]) -> bool:
        return users.set_user_theme(self.get_instance(), theme)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def execute(self, operation: str, args: Sequence[Any] = ()) -> Any:
        """Run a forwarded call by operation name.

        Raises:
            UnknownOperation: If ``operation`` is not an exposed Operation
            InvalidArgument: If the argument count does not fit the operation
        """
        try:
            op = Operation(operation)
        except ValueError:
            raise UnknownOperation(f"Unknown operation: {operation!r}") from None

        try:
            call = self._operations[op](*args)
        except TypeError as e:
            raise InvalidArgument(f"{op.value}: {e}") from e
        return await call
