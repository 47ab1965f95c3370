"""Prepared statement cache scoped to one open handle."""

from __future__ import annotations

import re
from typing import Any, Optional, Union

from sqlcipher3 import dbapi2 as sqlcipher

from ..errors import QueryCompilationError, StorageError

Params = Union[dict[str, Any], tuple, list, None]

_NAMED_PARAM = re.compile(r"[:@$]([A-Za-z_][A-Za-z0-9_]*)")


def _null_bindings(sql: str) -> Union[dict[str, None], tuple]:
    """Bindings that satisfy every placeholder in ``sql`` with NULL."""
    names = _NAMED_PARAM.findall(sql)
    if names:
        return {name: None for name in names}
    return (None,) * sql.count("?")


class PreparedStatement:
    """A compiled query bound to one connection.

    Each statement owns a dedicated cursor, so repeated runs reuse the
    driver's compiled statement instead of preparing the text again.
    """

    def __init__(self, connection: sqlcipher.Connection, sql: str):
        self.sql = sql
        self._cursor = connection.cursor()
        self._compile()

    def _compile(self) -> None:
        try:
            self._cursor.execute(f"EXPLAIN {self.sql}", _null_bindings(self.sql))
            self._cursor.fetchall()
        except sqlcipher.Error as e:
            self._cursor.close()
            raise QueryCompilationError(f"Failed to compile query: {self.sql.strip()}", e) from e

    def _execute(self, params: Params) -> sqlcipher.Cursor:
        try:
            return self._cursor.execute(self.sql, params if params is not None else ())
        except sqlcipher.Error as e:
            raise StorageError(f"Query failed: {self.sql.strip()}", e) from e

    def run(self, params: Params = None) -> int:
        """Execute a write statement.

        Returns:
            Number of rows changed
        """
        return self._execute(params).rowcount

    def get(self, params: Params = None) -> Optional[sqlcipher.Row]:
        """Execute and return the first row, or None."""
        # fetchall() resets the statement so no read snapshot stays open
        rows = self._execute(params).fetchall()
        return rows[0] if rows else None

    def all(self, params: Params = None) -> list[sqlcipher.Row]:
        """Execute and return every row."""
        return self._execute(params).fetchall()

    def close(self) -> None:
        self._cursor.close()


class StatementCache:
    """Mapping from exact query text to a PreparedStatement.

    Owned by an EncryptedHandle; it never outlives the connection it was
    created for, so a new handle always starts empty. Query text is the only
    key: reusing a text always returns the same statement.
    """

    def __init__(self, connection: sqlcipher.Connection):
        self._connection = connection
        self._statements: dict[str, PreparedStatement] = {}

    def __len__(self) -> int:
        return len(self._statements)

    def __contains__(self, sql: str) -> bool:
        return sql in self._statements

    def prepare(self, sql: str) -> PreparedStatement:
        """Return the cached statement for ``sql``, compiling it on first use.

        Raises:
            QueryCompilationError: If the query does not compile (not cached)
        """
        statement = self._statements.get(sql)
        if statement is None:
            statement = PreparedStatement(self._connection, sql)
            self._statements[sql] = statement
        return statement

    def clear(self) -> None:
        """Drop every cached statement."""
        for statement in self._statements.values():
            statement.close()
        self._statements.clear()
