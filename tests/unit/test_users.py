"""
Unit tests for users module.
"""

import pytest

from sidequest.errors import UserNotFound
from sidequest.users import UserDirectory


@pytest.fixture
def directory(store):
    return UserDirectory(store)


class TestUserDirectory:
    """Test user CRUD."""

    def test_create_and_get(self, directory, now):
        user = directory.create_user({'email': 'ada@example.com', 'displayName': 'Ada'}, now=now)

        assert user['id']
        assert user['createdAt'] == '2025-03-01T12:00:00Z'
        assert directory.get_user(user['id']) == user

    def test_get_missing(self, directory):
        with pytest.raises(UserNotFound) as exc_info:
            directory.get_user('ghost')
        assert str(exc_info.value) == "User not found"

    def test_list_users(self, directory):
        directory.create_user({'displayName': 'Ada'})
        directory.create_user({'displayName': 'Grace'})

        assert sorted(u['displayName'] for u in directory.list_users()) == ['Ada', 'Grace']

    def test_find_by_email_is_case_insensitive(self, directory):
        user = directory.create_user({'email': 'ada@example.com'})

        assert directory.find_by_email(' ADA@Example.com ')['id'] == user['id']
        assert directory.find_by_email('grace@example.com') is None

    def test_update_skips_protected_fields(self, directory, now):
        user = directory.create_user({'displayName': 'Ada', 'passwordHash': 'x'}, now=now)

        updated = directory.update_user(user['id'], {
            'displayName': 'Ada L.',
            'passwordHash': 'overwritten',
            'createdAt': 'never',
        })

        assert updated['displayName'] == 'Ada L.'
        assert updated['passwordHash'] == 'x'
        assert updated['createdAt'] == '2025-03-01T12:00:00Z'

    def test_update_missing(self, directory):
        with pytest.raises(UserNotFound):
            directory.update_user('ghost', {'displayName': 'x'})

    def test_delete_returns_document(self, directory):
        user = directory.create_user({'displayName': 'Ada'})

        deleted = directory.delete_user(user['id'])

        assert deleted == user
        with pytest.raises(UserNotFound):
            directory.delete_user(user['id'])
