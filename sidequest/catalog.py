"""
Quest catalog for SideQuest.

Read access to quest documents, quest creation, demo seeding and the stale
quest sweep. Listing never mutates; expiring stale quests is a separate pass
driven by the sweeper.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sidequest.errors import InvalidQuest, QuestNotFound
from sidequest.models import QUESTS, USERS, Quest, QuestStatus, to_iso, utcnow
from sidequest.store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_GRACE = timedelta(hours=2)


# Demo catalog; start offsets are hours from seeding time
DEMO_QUESTS = [
    {
        "id": "q1",
        "title": "Coding Workshop",
        "description": "Learn basic web development in a collaborative environment",
        "category": "coding",
        "tags": ["coding", "technology", "learning"],
        "requiredSkillLevel": 2,
        "minTeamSize": 2,
        "maxTeamSize": 3,
        "durationHours": 3,
        "estimatedHours": 3,
        "location": "Learning and Teaching Building (LTB)",
        "start_offset_hours": 2,
    },
    {
        "id": "q2",
        "title": "Community Garden Setup",
        "description": "Help set up a community garden on campus",
        "category": "gardening",
        "tags": ["gardening", "community", "outdoor"],
        "requiredSkillLevel": 1,
        "minTeamSize": 2,
        "maxTeamSize": 4,
        "durationHours": 4,
        "estimatedHours": 4,
        "location": "Campus Green",
        "start_offset_hours": 4,
    },
    {
        "id": "q3",
        "title": "Board Game Night",
        "description": "Organize and host a board game night",
        "category": "games",
        "tags": ["games", "social", "indoor"],
        "requiredSkillLevel": 1,
        "minTeamSize": 2,
        "maxTeamSize": 6,
        "durationHours": 3,
        "estimatedHours": 3,
        "location": "Campus Centre",
        "start_offset_hours": 24,
    },
    {
        "id": "q4",
        "title": "Campus Art Tour",
        "description": "Discover and document campus art installations",
        "category": "art",
        "tags": ["art", "exploration", "culture"],
        "requiredSkillLevel": 1,
        "minTeamSize": 2,
        "maxTeamSize": 4,
        "durationHours": 2.5,
        "estimatedHours": 2.5,
        "location": "Monash Gallery",
        "start_offset_hours": 5,
    },
    {
        "id": "q5",
        "title": "Campus Photography Walk",
        "description": "Explore the campus and capture unique moments with your camera",
        "category": "photography",
        "tags": ["photography", "exploration", "campus"],
        "requiredSkillLevel": 2,
        "minTeamSize": 1,
        "maxTeamSize": 3,
        "durationHours": 2,
        "estimatedHours": 2,
        "location": "Sir Louis Matheson Library",
        "start_offset_hours": 3,
    },
    {
        "id": "q6",
        "title": "Food Festival Planning",
        "description": "Help organize and plan the upcoming campus food festival",
        "category": "community",
        "tags": ["food", "community", "planning"],
        "requiredSkillLevel": 2,
        "minTeamSize": 3,
        "maxTeamSize": 5,
        "durationHours": 5,
        "estimatedHours": 5,
        "location": "Campus Centre Food Court",
        "start_offset_hours": 6,
    },
]


def is_joinable(quest: Quest, now: datetime) -> bool:
    """A quest is joinable while it is not terminal and hasn't started."""
    if quest.status.is_terminal:
        return False
    return quest.startTime is not None and quest.startTime > now


class QuestCatalog:
    """Quest documents in the ``quests`` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def all(self) -> list[Quest]:
        return [Quest.from_doc(doc) for doc in self.store.list(QUESTS)]

    def get(self, quest_id: str) -> Quest:
        """
        Fetch one quest.

        Raises:
            QuestNotFound: If no quest has this id
        """
        doc = self.store.get(QUESTS, quest_id)
        if doc is None:
            raise QuestNotFound(quest_id)
        return Quest.from_doc(doc)

    def list_joinable(self, now: datetime | None = None) -> list[Quest]:
        """
        Quests that can still be joined, closest start first.

        Excludes completed and expired quests and anything whose start time
        has passed. Read only.
        """
        now = now or utcnow()
        quests = [q for q in self.all() if is_joinable(q, now)]
        quests.sort(key=lambda q: q.startTime)
        return quests

    def create_quest(self, data: dict[str, Any], now: datetime | None = None) -> Quest:
        """
        Validate and insert a new quest in the ``open`` state.

        Args:
            data: Quest fields (camelCase, as stored); ``startTime`` may be an
                ISO string or datetime
            now: Reference time for the start time check

        Returns:
            The created Quest

        Raises:
            InvalidQuest: If required fields are missing or inconsistent
        """
        now = now or utcnow()
        title = (data.get('title') or '').strip()
        if not title:
            raise InvalidQuest("Quest title cannot be empty")
        if not data.get('startTime'):
            raise InvalidQuest("Quest needs a start time")

        doc = {k: v for k, v in data.items() if k != 'id'}
        doc.update({
            'title': title,
            'status': QuestStatus.OPEN.value,
            'teamMembers': [],
            'currentTeamSize': 0,
            'createdAt': to_iso(now),
        })
        if isinstance(doc['startTime'], datetime):
            doc['startTime'] = to_iso(doc['startTime'])

        if int(doc.get('minTeamSize', 1)) < 1:
            raise InvalidQuest("Minimum team size must be at least 1")

        quest = Quest.from_doc({'id': data.get('id') or '', **doc})
        if quest.maxTeamSize < quest.minTeamSize:
            raise InvalidQuest(
                f"Maximum team size ({quest.maxTeamSize}) is below minimum team size ({quest.minTeamSize})"
            )
        if not 1 <= quest.requiredSkillLevel <= 5:
            raise InvalidQuest("Required skill level must be between 1 and 5")
        if quest.startTime <= now:
            raise InvalidQuest("Quest start time must be in the future")

        if data.get('id'):
            self.store.set(QUESTS, data['id'], doc)
            quest_id = data['id']
        else:
            quest_id = self.store.add(QUESTS, doc)

        logger.info(f"Created quest {quest_id}: {title}")
        return self.get(quest_id)

    def seed_demo_quests(self, now: datetime | None = None) -> list[str]:
        """Replace the demo quests with fresh copies starting relative to now."""
        now = now or utcnow()
        ids = []
        for demo in DEMO_QUESTS:
            fields = {k: v for k, v in demo.items() if k not in ('id', 'start_offset_hours')}
            fields.update({
                'status': QuestStatus.OPEN.value,
                'teamMembers': [],
                'currentTeamSize': 0,
                'startTime': to_iso(now + timedelta(hours=demo['start_offset_hours'])),
                'createdAt': to_iso(now),
            })
            self.store.set(QUESTS, demo['id'], fields)
            ids.append(demo['id'])
        logger.info(f"Seeded {len(ids)} demo quests")
        return ids

    def sweep_stale(self, now: datetime | None = None, grace: timedelta = DEFAULT_GRACE) -> list[str]:
        """
        Mark quests that never got going as expired.

        A quest still ``open`` or ``forming`` whose start time is more than
        ``grace`` in the past can no longer be joined or started. Members of
        a forming team are released so they can join something else.

        Returns:
            Ids of quests marked expired
        """
        now = now or utcnow()

        def is_stale(quest: Quest) -> bool:
            if quest.status not in (QuestStatus.OPEN, QuestStatus.FORMING):
                return False
            return quest.startTime is not None and now - quest.startTime > grace

        def expire(txn, quest_id: str) -> bool:
            doc = txn.get(QUESTS, quest_id)
            if doc is None or not is_stale(Quest.from_doc(doc)):
                return False
            txn.update(QUESTS, quest_id, {'status': QuestStatus.EXPIRED.value})
            for member in doc.get('teamMembers') or []:
                user = txn.get(USERS, member['userId'])
                if user is not None and user.get('activeQuestId') == quest_id:
                    txn.update(USERS, member['userId'], {
                        'activeQuestId': None,
                        'activeQuestStartDate': None,
                    })
            return True

        expired = []
        for quest in self.all():
            if not is_stale(quest):
                continue
            if self.store.run_transaction(lambda txn: expire(txn, quest.id)):
                expired.append(quest.id)

        if expired:
            logger.info(f"Marked {len(expired)} stale quests expired: {expired}")
        return expired
