"""Settings store configuration with directory-based resolution.

## Layout

```
<config_dir>/
├── store.json           # Optional store config
└── sql/
    ├── db.sqlite        # Encrypted database
    ├── db.sqlite-wal
    └── db.sqlite-shm
```

### store.json Structure

```json
{
  "auth": {
    "key_env": "SETTINGS_STORE_KEY_WORK"
  }
}
```

### Resolution Order

1. Explicit ``config_dir`` argument
2. ``SETTINGS_STORE_CONFIG_DIR`` environment variable
3. ``platformdirs.user_config_dir("settings-store")``
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from platformdirs import user_config_dir

APP_NAME = "settings-store"

CONFIG_DIR_ENV = "SETTINGS_STORE_CONFIG_DIR"
DEFAULT_KEY_ENV = "SETTINGS_STORE_KEY"
STORE_CONFIG_FILE = "store.json"

# Database location inside the config directory
DB_DIR_NAME = "sql"
DB_FILE_NAME = "db.sqlite"

# Side files written by SQLite in WAL mode
DB_SIDE_FILE_SUFFIXES = ("-wal", "-shm")


def database_path(config_dir: Union[str, Path]) -> Path:
    """Path of the encrypted database file inside ``config_dir``."""
    return Path(config_dir) / DB_DIR_NAME / DB_FILE_NAME


def database_files(path: Path) -> list[Path]:
    """The primary database file followed by its WAL side files."""
    return [path] + [path.with_name(path.name + suffix) for suffix in DB_SIDE_FILE_SUFFIXES]


@dataclass
class StoreConfig:
    """Resolved settings store configuration."""

    config_dir: Path
    config_source: str = "user"  # "argument", "environment", "user"

    # Auth
    key_env: str = DEFAULT_KEY_ENV
    key: Optional[str] = None

    def has_key(self) -> bool:
        """Check if an encryption key was found."""
        return bool(self.key)

    def db_path(self) -> Path:
        """Get the database path for this config."""
        return database_path(self.config_dir)


def load_store_config(config_dir: Path) -> dict:
    """Load ``store.json`` from the config directory, if present."""
    config_path = config_dir / STORE_CONFIG_FILE
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        return json.load(f) or {}


def resolve_config(
    config_dir: Optional[Union[str, Path]] = None,
    key_env: Optional[str] = None,
) -> StoreConfig:
    """Resolve the store configuration.

    Args:
        config_dir: Explicit config directory (highest priority)
        key_env: Explicit name of the environment variable holding the key

    Returns:
        StoreConfig with the resolved directory and key
    """
    if config_dir:
        config = StoreConfig(config_dir=Path(config_dir), config_source="argument")
    elif os.environ.get(CONFIG_DIR_ENV):
        config = StoreConfig(config_dir=Path(os.environ[CONFIG_DIR_ENV]), config_source="environment")
    else:
        config = StoreConfig(config_dir=Path(user_config_dir(APP_NAME)), config_source="user")

    data = load_store_config(config.config_dir)
    auth = data.get("auth", {})
    if key_env:
        config.key_env = key_env
    elif auth.get("key_env"):
        config.key_env = auth["key_env"]

    config.key = os.environ.get(config.key_env) or None
    return config


def get_config_help_message(config: StoreConfig) -> str:
    """Generate help text for a config without a key."""
    return f"""No encryption key found in ${config.key_env}.

Config directory: {config.config_dir} (from {config.config_source})

To configure:

1. Export the key (letters and digits only):
   export {config.key_env}=<key>

2. Or point at another variable in {config.config_dir / STORE_CONFIG_FILE}:
   {{"auth": {{"key_env": "MY_SETTINGS_KEY"}}}}
"""
