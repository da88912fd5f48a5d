"""
Directory - read access to the cached roster of users, channels, groups,
direct-message channels and bot users.

Entries are the plain dicts delivered by ``rtm.start``. The directory never
builds the roster itself; it only looks entries up and merges
``user_change`` / ``bot_changed`` updates into them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# users, channels, groups, IMs
ID_PREFIXES = ("U", "C", "G", "D")

# Lookup order. An entry earlier in this order wins a display-name collision,
# e.g. a group beats a channel of the same name.
COLLECTIONS = ("users", "groups", "channels", "ims", "bots")


class TokenKind(str, Enum):
    """Whether a lookup token is an identifier or a display name."""

    ID = "ID"
    NAME = "NAME"


def token_kind(token: str) -> TokenKind:
    """
    Classify ``token``.

    It is an identifier iff it is all upper-case, starts with one of
    ``ID_PREFIXES`` and its second character is ``0`` (``U0123123``).
    Anything else (``test-bot``, ``G0123123x``) is a display name.
    """
    if (
        len(token) > 1
        and token.upper() == token
        and token[0] in ID_PREFIXES
        and token[1] == "0"
    ):
        return TokenKind.ID
    return TokenKind.NAME


@dataclass
class Directory:
    """Roster cache owned by one bot instance."""

    users: List[Dict] = field(default_factory=list)
    channels: List[Dict] = field(default_factory=list)
    groups: List[Dict] = field(default_factory=list)
    ims: List[Dict] = field(default_factory=list)
    bots: List[Dict] = field(default_factory=list)
    me: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_rtm_start(cls, data: Dict[str, Any]) -> "Directory":
        """Build a directory from an ``rtm.start`` response body."""
        return cls(
            users=data.get("users") or [],
            channels=data.get("channels") or [],
            groups=data.get("groups") or [],
            ims=data.get("ims") or [],
            bots=data.get("bots") or [],
            me=data.get("self") or {},
        )

    def all(self) -> List[Dict]:
        """Every entry, concatenated in ``COLLECTIONS`` order."""
        entries: List[Dict] = []
        for name in COLLECTIONS:
            entries.extend(getattr(self, name))
        return entries

    def find(self, token: str) -> Optional[Dict]:
        """
        Resolve a name or id to the first matching entry, or None.

        Identifier-shaped tokens are matched against ``id``, everything else
        against ``name``.
        """
        key = "id" if token_kind(token) is TokenKind.ID else "name"
        for entry in self.all():
            if entry.get(key) == token:
                return entry
        return None

    def get(self, entity_id: str) -> Optional[Dict]:
        """Look an entry up by id regardless of the token's shape."""
        for entry in self.all():
            if entry.get("id") == entity_id:
                return entry
        return None

    def is_user(self, entry: Dict) -> bool:
        return any(entry is user for user in self.users)

    def im_for_user(self, user_id: str) -> Optional[Dict]:
        """The direct-message channel open with ``user_id``, if any."""
        for im in self.ims:
            if im.get("user") == user_id:
                return im
        return None

    def apply_change(self, collection: str, entity: Dict[str, Any]) -> Optional[Dict]:
        """
        Merge an externally delivered entity update into the matching entry.

        Top-level fields are replaced, ``profile`` is merged key by key.
        Returns the updated entry, or None if no entry has that id.
        """
        entity_id = entity.get("id")
        for entry in getattr(self, collection):
            if entry.get("id") != entity_id:
                continue
            for key, value in entity.items():
                if key == "profile" and isinstance(value, dict):
                    entry.setdefault("profile", {}).update(value)
                else:
                    entry[key] = value
            logger.debug(f"Updated {collection} entry {entity_id}")
            return entry

        logger.debug(f"Ignoring change for unknown {collection} entry {entity_id}")
        return None
