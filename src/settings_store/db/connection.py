"""Encrypted database handle management for the settings store."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional

from sqlcipher3 import dbapi2 as sqlcipher

from ..errors import InvalidKey, StorageError, StorageOpenError
from .schema import SCHEMA_VERSION, get_migrations
from .statements import PreparedStatement, StatementCache

logger = logging.getLogger(__name__)

# The key is interpolated into a quoted PRAGMA, so only these characters pass
KEY_PATTERN = re.compile(r"[0-9A-Za-z]+")

# SQLCipher 4 file format
CIPHER_COMPATIBILITY = 4

# Header stamp ("SeSt") marking user_version as written by update_schema
APPLICATION_ID = 0x53655374

Connect = Callable[..., sqlcipher.Connection]


def validate_key(key: str) -> None:
    """Reject keys that could escape the quoted key directive.

    Raises:
        InvalidKey: If the key contains characters outside [0-9A-Za-z]
    """
    if not KEY_PATTERN.fullmatch(key):
        raise InvalidKey("Encryption key may only contain characters 0-9, A-Z and a-z")


def key_database(conn: sqlcipher.Connection, key: str) -> None:
    """Select the cipher format, then apply the key, as separate directives."""
    conn.execute(f"PRAGMA cipher_default_compatibility = {CIPHER_COMPATIBILITY}")
    conn.execute(f"PRAGMA key = '{key}'")
    conn.execute(f"PRAGMA cipher_compatibility = {CIPHER_COMPATIBILITY}")


def switch_to_wal(conn: sqlcipher.Connection) -> None:
    """Enable write-ahead logging with full synchronous flushing."""
    # https://sqlite.org/wal.html
    mode = conn.execute("PRAGMA journal_mode = WAL").fetchone()[0]
    if str(mode).lower() != "wal":
        logger.warning("switch_to_wal: journal_mode is %s, expected wal", mode)
    conn.execute("PRAGMA synchronous = FULL")
    conn.execute("PRAGMA fullfsync = ON")


def get_user_version(conn: sqlcipher.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def set_user_version(conn: sqlcipher.Connection, version: int) -> None:
    conn.execute(f"PRAGMA user_version = {int(version)}")


def get_schema_version(conn: sqlcipher.Connection) -> int:
    return conn.execute("PRAGMA schema_version").fetchone()[0]


def migrate_schema_version(conn: sqlcipher.Connection, log: logging.Logger = logger) -> None:
    """Bridge the legacy schema_version counter into user_version once.

    A nonzero user_version means the bridge already ran (or the file was
    created with user_version tracking) and is never overwritten.
    """
    user_version = get_user_version(conn)
    if user_version > 0:
        return

    schema_version = get_schema_version(conn)
    log.info(
        "migrate_schema_version: Migrating from schema_version %s to user_version %s",
        schema_version,
        schema_version,
    )
    set_user_version(conn, schema_version)


def get_application_id(conn: sqlcipher.Connection) -> int:
    return conn.execute("PRAGMA application_id").fetchone()[0]


def update_schema(conn: sqlcipher.Connection, log: logging.Logger = logger) -> None:
    """Run pending schema migrations, each in its own transaction.

    user_version only counts as a migration level once a migration has
    stamped APPLICATION_ID into the header. Files without the stamp (legacy
    stores whose user_version came from the schema_version bridge) start
    from level 0; every migration is idempotent.
    """
    stamped = get_application_id(conn) == APPLICATION_ID
    current_version = get_user_version(conn) if stamped else 0
    if current_version > SCHEMA_VERSION:
        raise StorageOpenError(
            f"update_schema: user_version is {current_version} but the newest "
            f"known schema is {SCHEMA_VERSION}"
        )

    for version, sql in get_migrations(current_version, SCHEMA_VERSION):
        log.info("update_schema: Migrating to version %s", version)
        try:
            conn.executescript(
                f"BEGIN;\n{sql}\n"
                f"PRAGMA user_version = {version};\n"
                f"PRAGMA application_id = {APPLICATION_ID};\n"
                "COMMIT;"
            )
        except sqlcipher.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise


class EncryptedHandle:
    """The open, keyed connection to the encrypted settings file.

    Owns the StatementCache for its connection. Use ``transaction()`` for
    multi-statement writes; single statements autocommit.
    """

    def __init__(self, path: Path, connection: sqlcipher.Connection):
        self.path = path
        self.connection = connection
        self.statements = StatementCache(connection)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare(self, sql: str) -> PreparedStatement:
        """Get a cached prepared statement for ``sql``."""
        return self.statements.prepare(sql)

    def pragma(self, name: str):
        """Read a single-valued PRAGMA."""
        return self.connection.execute(f"PRAGMA {name}").fetchone()[0]

    @contextmanager
    def transaction(self) -> Generator[EncryptedHandle, None, None]:
        """Run the block in a transaction with automatic commit/rollback.

        Example:
            with handle.transaction():
                row = handle.prepare("SELECT json FROM users WHERE id = :id").get({"id": 1})
                handle.prepare("UPDATE users SET json = :json WHERE id = :id").run(...)
        """
        try:
            self.connection.execute("BEGIN IMMEDIATE")
        except sqlcipher.Error as e:
            raise StorageError("Failed to begin transaction", e) from e
        try:
            yield self
            self.connection.execute("COMMIT")
        except Exception:
            self.connection.execute("ROLLBACK")
            raise

    def optimize(self) -> None:
        self.connection.execute("PRAGMA optimize")

    def close(self) -> None:
        """Close the connection; the statement cache goes with it."""
        if self._closed:
            return
        self._closed = True
        self.statements.clear()
        self.connection.close()


def open_and_migrate(
    path: Path,
    key: str,
    log: logging.Logger = logger,
    connect: Optional[Connect] = None,
) -> EncryptedHandle:
    """Open ``path`` under encryption, configure durability and migrate.

    The half-open connection is closed before any failure propagates.

    Raises:
        StorageOpenError: If opening, keying or migrating fails
    """
    connect = connect or sqlcipher.connect
    conn: Optional[sqlcipher.Connection] = None

    try:
        conn = connect(str(path), isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlcipher.Row
        key_database(conn, key)
        switch_to_wal(conn)
        migrate_schema_version(conn, log)
        update_schema(conn, log)
        conn.execute("PRAGMA foreign_keys = ON")
        return EncryptedHandle(path, conn)
    except (sqlcipher.Error, StorageOpenError) as e:
        log.error("open_and_migrate: Failed to open %s: %s", path, e)
        if conn is not None:
            conn.close()
        if isinstance(e, StorageOpenError):
            raise
        raise StorageOpenError(f"open_and_migrate: Failed to open encrypted database {path}", e) from e
