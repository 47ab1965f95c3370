"""User settings operations shared by the server and the CLI."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..db import EncryptedHandle
from ..errors import InvalidArgument
from ..models import USER_ID_KEY, Theme, UserRecord

logger = logging.getLogger(__name__)

UPSERT_USER_SQL = "INSERT OR REPLACE INTO users (id, json) VALUES (:id, :json)"
SELECT_USER_SQL = "SELECT json FROM users WHERE id = :id"
UPDATE_USER_SQL = "UPDATE users SET json = :json WHERE id = :id"


def _dump(record: UserRecord) -> str:
    try:
        return json.dumps(record.to_dict(), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"User attributes are not JSON serializable: {e}") from e


def update_or_create_user(handle: EncryptedHandle, attributes: dict[str, Any]) -> None:
    """Replace the settings row with ``attributes``.

    This is a full replace, not a patch: attributes missing from the new
    mapping are gone afterwards.
    """
    record = UserRecord.from_attributes(attributes)
    handle.prepare(UPSERT_USER_SQL).run({"id": USER_ID_KEY, "json": _dump(record)})


def get_user_info(handle: EncryptedHandle) -> Optional[dict[str, Any]]:
    """Return the stored settings, or None before the first write."""
    row = handle.prepare(SELECT_USER_SQL).get({"id": USER_ID_KEY})
    if row is None:
        return None
    return UserRecord.from_dict(json.loads(row["json"])).to_dict()


def set_user_theme(handle: EncryptedHandle, theme: Any) -> bool:
    """Update only the theme of the settings row.

    Returns:
        True if the row was updated, False if no row exists yet
    """
    theme = Theme.parse(theme)
    with handle.transaction():
        row = handle.prepare(SELECT_USER_SQL).get({"id": USER_ID_KEY})
        if row is None:
            logger.debug("set_user_theme: No user record yet, theme %s not stored", theme.value)
            return False
        record = UserRecord.from_dict(json.loads(row["json"]))
        record.attributes["theme"] = theme.value
        handle.prepare(UPDATE_USER_SQL).run({"id": USER_ID_KEY, "json": _dump(record)})
    return True
