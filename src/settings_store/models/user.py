"""User settings record model."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..errors import InvalidArgument

# The settings row always lives under this identity
USER_ID_KEY = 1


class Theme(str, Enum):
    """Application theme preference."""
    SYSTEM = "system"
    LIGHT = "light"
    DARK = "dark"

    @classmethod
    def parse(cls, value: Any) -> "Theme":
        """Convert a theme name (or Theme) into a Theme.

        Raises:
            InvalidArgument: If the value is not a known theme
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise InvalidArgument(f"Unknown theme {value!r} (expected one of: {choices})") from None


@dataclass
class UserRecord:
    """The single persisted settings row."""

    attributes: dict[str, Any] = field(default_factory=dict)
    id: int = USER_ID_KEY

    @property
    def theme(self) -> Optional[Theme]:
        value = self.attributes.get("theme")
        return Theme.parse(value) if value is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Return the attributes merged with the fixed identity."""
        return {**self.attributes, "id": self.id}

    @classmethod
    def from_attributes(cls, attributes: Any) -> "UserRecord":
        """Build a record from caller-supplied attributes.

        The identity key is fixed; an ``id`` in the attributes is ignored.
        """
        if not isinstance(attributes, dict):
            raise InvalidArgument("User attributes must be a mapping")
        attrs = {k: v for k, v in attributes.items() if k != "id"}
        if attrs.get("theme") is not None:
            attrs["theme"] = Theme.parse(attrs["theme"]).value
        return cls(attributes=attrs)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserRecord":
        """Create from a stored document."""
        attrs = {k: v for k, v in data.items() if k != "id"}
        return cls(attributes=attrs, id=data.get("id", USER_ID_KEY))
