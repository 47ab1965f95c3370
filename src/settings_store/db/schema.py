"""Database schema definitions and migrations for the settings store."""

SCHEMA_VERSION = 1

# Initial schema (version 1)
SCHEMA_V1 = """
-- ============================================================
-- USERS TABLE
-- One row, fixed id; attributes stored as a JSON document
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    json TEXT NOT NULL
);
"""


def get_migrations(from_version: int, to_version: int) -> list[tuple[int, str]]:
    """Get the migrations needed to go from one version to another.

    Args:
        from_version: Current user_version (0 for fresh install)
        to_version: Target schema version

    Returns:
        List of (version, sql) pairs to execute in order
    """
    migrations = []

    if from_version < 1 <= to_version:
        migrations.append((1, SCHEMA_V1))

    return migrations
