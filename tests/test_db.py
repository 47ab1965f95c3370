"""Tests for the database module."""

from pathlib import Path
from unittest.mock import Mock

import pytest
from sqlcipher3 import dbapi2 as sqlcipher

from settings_store.config import database_path
from settings_store.db import (
    APPLICATION_ID,
    SCHEMA_VERSION,
    get_application_id,
    get_schema_version,
    get_user_version,
    migrate_schema_version,
    open_and_migrate,
    update_schema,
    validate_key,
)
from settings_store.db.connection import key_database
from settings_store.errors import InvalidKey, StorageOpenError
from settings_store.services import get_user_info, update_or_create_user


def _raw_connection(path: Path, key: str) -> sqlcipher.Connection:
    conn = sqlcipher.connect(str(path), isolation_level=None)
    key_database(conn, key)
    return conn


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = database_path(tmp_path)
    path.parent.mkdir(parents=True)
    return path


class TestValidateKey:
    """Tests for key character-set validation."""

    @pytest.mark.parametrize("key", ["abc", "ABC123", "0", "aZ09"])
    def test_accepts_alphanumeric(self, key):
        validate_key(key)

    @pytest.mark.parametrize("key", ["abc!def", "with space", "quote'd", "dash-key", "ключ", ""])
    def test_rejects_other_characters(self, key):
        with pytest.raises(InvalidKey):
            validate_key(key)


class TestOpenAndMigrate:
    """Tests for open_and_migrate."""

    def test_fresh_database_is_migrated(self, db_path: Path, key: str):
        handle = open_and_migrate(db_path, key)
        try:
            tables = handle.connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
            assert "users" in [t["name"] for t in tables]
            assert get_user_version(handle.connection) == SCHEMA_VERSION
        finally:
            handle.close()

    def test_durability_pragmas(self, db_path: Path, key: str):
        handle = open_and_migrate(db_path, key)
        try:
            assert handle.pragma("journal_mode").lower() == "wal"
            assert handle.pragma("synchronous") == 2  # FULL
            assert handle.pragma("foreign_keys") == 1
        finally:
            handle.close()

    def test_file_is_encrypted(self, db_path: Path, key: str):
        handle = open_and_migrate(db_path, key)
        handle.prepare("INSERT INTO users (id, json) VALUES (:id, :json)").run(
            {"id": 1, "json": '{"name": "plaintext-marker"}'}
        )
        handle.close()

        data = db_path.read_bytes()
        assert not data.startswith(b"SQLite format 3\x00")
        assert b"plaintext-marker" not in data

    def test_reopen_with_same_key(self, db_path: Path, key: str):
        handle = open_and_migrate(db_path, key)
        handle.prepare("INSERT INTO users (id, json) VALUES (:id, :json)").run({"id": 1, "json": "{}"})
        handle.close()

        reopened = open_and_migrate(db_path, key)
        try:
            row = reopened.prepare("SELECT json FROM users WHERE id = :id").get({"id": 1})
            assert row["json"] == "{}"
        finally:
            reopened.close()

    def test_wrong_key_raises_storage_open_error(self, db_path: Path, key: str):
        open_and_migrate(db_path, key).close()

        with pytest.raises(StorageOpenError) as exc_info:
            open_and_migrate(db_path, "someOtherKey")
        assert exc_info.value.cause is not None

    def test_failed_open_closes_connection(self, db_path: Path, key: str):
        open_and_migrate(db_path, key).close()

        opened = []

        def spy_connect(*args, **kwargs):
            conn = sqlcipher.connect(*args, **kwargs)
            opened.append(conn)
            return conn

        with pytest.raises(StorageOpenError):
            open_and_migrate(db_path, "someOtherKey", connect=spy_connect)

        assert len(opened) == 1
        with pytest.raises(sqlcipher.ProgrammingError):
            opened[0].execute("SELECT 1")

    def test_failure_is_logged(self, db_path: Path, key: str):
        open_and_migrate(db_path, key).close()
        log = Mock()

        with pytest.raises(StorageOpenError):
            open_and_migrate(db_path, "someOtherKey", log=log)

        log.error.assert_called_once()

    def test_newer_schema_is_refused(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        conn.execute(f"PRAGMA application_id = {APPLICATION_ID}")
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        conn.close()

        with pytest.raises(StorageOpenError):
            open_and_migrate(db_path, key)

    def test_fresh_database_is_stamped(self, db_path: Path, key: str):
        handle = open_and_migrate(db_path, key)
        try:
            assert get_application_id(handle.connection) == APPLICATION_ID
        finally:
            handle.close()

    def test_legacy_store_with_several_ddl_changes(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, json TEXT NOT NULL)")
        conn.execute("CREATE INDEX users_json ON users (json)")
        conn.execute("""INSERT INTO users (id, json) VALUES (1, '{"name": "Ada"}')""")
        assert get_schema_version(conn) > SCHEMA_VERSION
        assert get_user_version(conn) == 0
        conn.close()

        handle = open_and_migrate(db_path, key)
        try:
            assert get_user_version(handle.connection) == SCHEMA_VERSION
            assert get_user_info(handle) == {"name": "Ada", "id": 1}

            update_or_create_user(handle, {"name": "Grace"})
            assert get_user_info(handle) == {"name": "Grace", "id": 1}
        finally:
            handle.close()

    def test_legacy_store_without_users_table(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY)")
        assert get_schema_version(conn) == SCHEMA_VERSION
        conn.close()

        handle = open_and_migrate(db_path, key)
        try:
            assert get_user_version(handle.connection) == SCHEMA_VERSION
            assert get_user_info(handle) is None

            update_or_create_user(handle, {"name": "Ada"})
            assert get_user_info(handle) == {"name": "Ada", "id": 1}
        finally:
            handle.close()

    def test_legacy_store_reopens_cleanly(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY)")
        conn.execute("CREATE TABLE tags (id INTEGER PRIMARY KEY)")
        conn.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY)")
        conn.close()

        open_and_migrate(db_path, key).close()
        log = Mock()
        handle = open_and_migrate(db_path, key, log=log)
        try:
            assert get_user_version(handle.connection) == SCHEMA_VERSION
            log.info.assert_not_called()
        finally:
            handle.close()


class TestMigrateSchemaVersion:
    """Tests for the schema_version -> user_version bridge."""

    def test_copies_schema_version_once(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        try:
            conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY)")
            schema_version = get_schema_version(conn)
            assert schema_version > 0
            assert get_user_version(conn) == 0

            migrate_schema_version(conn)
            assert get_user_version(conn) == schema_version
        finally:
            conn.close()

    def test_is_idempotent(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        try:
            conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY)")
            migrate_schema_version(conn)
            first = get_user_version(conn)

            # Bump schema_version; the bridge must not run again
            conn.execute("CREATE TABLE another (id INTEGER PRIMARY KEY)")
            assert get_schema_version(conn) != first

            migrate_schema_version(conn)
            assert get_user_version(conn) == first
        finally:
            conn.close()

    def test_never_overwrites_nonzero_user_version(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        try:
            conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY)")
            conn.execute("PRAGMA user_version = 42")

            migrate_schema_version(conn)
            assert get_user_version(conn) == 42
        finally:
            conn.close()

    def test_logs_the_migration(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        log = Mock()
        try:
            migrate_schema_version(conn, log)
            log.info.assert_called_once()

            conn.execute("PRAGMA user_version = 1")
            migrate_schema_version(conn, log)
            log.info.assert_called_once()
        finally:
            conn.close()


class TestUpdateSchema:
    """Tests for the full schema migration."""

    def test_update_schema_is_idempotent(self, db_path: Path, key: str):
        conn = _raw_connection(db_path, key)
        try:
            update_schema(conn)
            update_schema(conn)
            assert get_user_version(conn) == SCHEMA_VERSION
        finally:
            conn.close()
