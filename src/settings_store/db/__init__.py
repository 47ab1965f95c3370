"""Database module for settings-store encrypted storage.

This module opens the SQLCipher-encrypted settings file, configures
durability, migrates its schema and caches prepared statements per handle.

Usage:
    from settings_store.db import open_and_migrate

    handle = open_and_migrate(Path("config/sql/db.sqlite"), key)

    with handle.transaction():
        handle.prepare("UPDATE users SET json = :json WHERE id = :id").run(params)
"""

from .connection import (
    APPLICATION_ID,
    EncryptedHandle,
    get_application_id,
    get_schema_version,
    get_user_version,
    migrate_schema_version,
    open_and_migrate,
    update_schema,
    validate_key,
)
from .schema import SCHEMA_VERSION
from .statements import PreparedStatement, StatementCache

__all__ = [
    "APPLICATION_ID",
    "EncryptedHandle",
    "PreparedStatement",
    "SCHEMA_VERSION",
    "StatementCache",
    "get_application_id",
    "get_schema_version",
    "get_user_version",
    "migrate_schema_version",
    "open_and_migrate",
    "update_schema",
    "validate_key",
]
