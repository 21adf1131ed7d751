"""Shared fixtures for unit tests."""

from datetime import datetime, timedelta, UTC

import pytest

from sidequest.catalog import QuestCatalog
from sidequest.models import USERS
from sidequest.store import MemoryStore


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def catalog(store):
    return QuestCatalog(store)


@pytest.fixture
def add_user(store):
    """Factory storing a user document under a fixed id."""

    def _add(user_id, preferences=None, **fields):
        doc = {
            'email': f'{user_id}@example.com',
            'displayName': user_id.title(),
            'activeQuestId': None,
            'completedQuests': [],
            **fields,
        }
        if preferences is not None:
            doc['preferences'] = preferences
        store.set(USERS, user_id, doc)
        return {'id': user_id, **doc}

    return _add


@pytest.fixture
def add_quest(catalog, now):
    """Factory creating an open quest starting two hours after ``now``."""

    def _add(quest_id, **fields):
        data = {
            'id': quest_id,
            'title': f'Quest {quest_id}',
            'tags': ['coding'],
            'category': 'coding',
            'requiredSkillLevel': 2,
            'minTeamSize': 2,
            'maxTeamSize': 3,
            'durationHours': 2,
            'startTime': now + timedelta(hours=2),
            **fields,
        }
        return catalog.create_quest(data, now=now)

    return _add
