"""
User directory for SideQuest.

Plain CRUD over the ``users`` collection. The store handle is passed in by
the caller; nothing is kept at module level.
"""

from datetime import datetime
from typing import Any

from sidequest.errors import UserNotFound
from sidequest.models import USERS, to_iso, utcnow
from sidequest.store import DocumentStore

# Fields callers can't overwrite through update_user
PROTECTED_FIELDS = ('id', 'createdAt', 'passwordHash')


class UserDirectory:
    """CRUD access to user documents."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_users(self) -> list[dict]:
        return self.store.list(USERS)

    def get_user(self, user_id: str) -> dict:
        """
        Raises:
            UserNotFound: If no user has this id
        """
        user = self.store.get(USERS, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def find_by_email(self, email: str) -> dict | None:
        """Case-insensitive email lookup."""
        wanted = email.strip().lower()
        for user in self.store.list(USERS):
            if (user.get('email') or '').lower() == wanted:
                return user
        return None

    def create_user(self, data: dict[str, Any], now: datetime | None = None) -> dict:
        """Insert a user and return it with its generated id."""
        timestamp = to_iso(now or utcnow())
        doc = {k: v for k, v in data.items() if k != 'id'}
        doc.setdefault('createdAt', timestamp)
        doc['updatedAt'] = timestamp
        user_id = self.store.add(USERS, doc)
        return {'id': user_id, **doc}

    def update_user(self, user_id: str, data: dict[str, Any], now: datetime | None = None) -> dict:
        """
        Merge fields into a user.

        Raises:
            UserNotFound: If no user has this id
        """
        if self.store.get(USERS, user_id) is None:
            raise UserNotFound(user_id)
        changes = {k: v for k, v in data.items() if k not in PROTECTED_FIELDS}
        changes['updatedAt'] = to_iso(now or utcnow())
        return self.store.update(USERS, user_id, changes)

    def delete_user(self, user_id: str) -> dict:
        """
        Remove a user and return the deleted document.

        Raises:
            UserNotFound: If no user has this id
        """
        user = self.get_user(user_id)
        self.store.delete(USERS, user_id)
        return user
