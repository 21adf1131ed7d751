"""
Quest lifecycle for SideQuest.

State machine for a single quest::

    open -> forming -> active -> completed

plus ``expired``, reachable from any non-terminal state through the sweeps.

Each operation reads and writes the quest document and the affected user
documents inside one store transaction, so two people racing for the last
seat can't both get it.
"""

import logging
from datetime import datetime, timedelta

from sidequest.config import CompletionPolicy
from sidequest.errors import (
    AlreadyActive,
    AlreadyJoined,
    NotAMember,
    QuestNotFound,
    QuestUnavailable,
    TeamFull,
    UserNotFound,
)
from sidequest.models import (
    QUESTS,
    STATUS_ORDER,
    USERS,
    CompletedQuest,
    Quest,
    QuestStatus,
    TeamMember,
    to_iso,
    utcnow,
)
from sidequest.store import DocumentStore, Transaction

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(hours=24)


def _load_quest(txn: Transaction, quest_id: str) -> Quest:
    doc = txn.get(QUESTS, quest_id)
    if doc is None:
        raise QuestNotFound(quest_id)
    return Quest.from_doc(doc)


def _load_user(txn: Transaction, user_id: str) -> dict:
    user = txn.get(USERS, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def _ensure_available(quest: Quest) -> None:
    if quest.status == QuestStatus.COMPLETED:
        raise QuestUnavailable("This quest has already been completed")
    if quest.status == QuestStatus.EXPIRED:
        raise QuestUnavailable("This quest has expired")


class QuestLifecycle:
    """Join, complete and expire quests."""

    def __init__(
        self,
        store: DocumentStore,
        completion_policy: CompletionPolicy = CompletionPolicy.QUEST_WIDE,
        expiry: timedelta = DEFAULT_EXPIRY,
    ):
        self.store = store
        self.completion_policy = completion_policy
        self.expiry = expiry

    def join(self, quest_id: str, user_id: str, start_solo: bool = False,
             now: datetime | None = None) -> Quest:
        """
        Add a user to a quest's team.

        The quest becomes ``active`` once the team reaches its minimum size
        (or straight away with ``start_solo``), ``forming`` before that. The
        status never moves backwards.

        Args:
            quest_id: Quest to join
            user_id: Joining user
            start_solo: Start the quest without waiting for teammates
            now: Reference time (defaults to current UTC time)

        Returns:
            The updated Quest

        Raises:
            QuestNotFound: If the quest doesn't exist
            UserNotFound: If the user doesn't exist
            QuestUnavailable: If the quest is completed, expired or started
            AlreadyActive: If the user is already on a quest
            AlreadyJoined: If the user is already on this team
            TeamFull: If the team has no seats left
        """
        now = now or utcnow()

        def _join(txn: Transaction) -> Quest:
            quest = _load_quest(txn, quest_id)
            user = _load_user(txn, user_id)

            _ensure_available(quest)
            if quest.startTime is None or now >= quest.startTime:
                raise QuestUnavailable("This quest has already started")
            if user.get('activeQuestId'):
                raise AlreadyActive("You already have an active quest. Complete it before joining another.")
            if quest.has_member(user_id):
                raise AlreadyJoined("You have already joined this quest")
            if quest.team_size >= quest.maxTeamSize:
                raise TeamFull("Quest team is already full")

            previous_size = quest.team_size
            quest.teamMembers.append(TeamMember(
                userId=user_id,
                displayName=user.get('displayName') or user.get('email') or user_id,
                joinedAt=to_iso(now),
            ))

            if start_solo or previous_size + 1 >= quest.minTeamSize:
                target = QuestStatus.ACTIVE
            else:
                target = QuestStatus.FORMING
            if STATUS_ORDER[target] > STATUS_ORDER[quest.status]:
                quest.status = target

            quest.endTime = now + timedelta(hours=quest.durationHours)

            txn.update(QUESTS, quest_id, {
                'teamMembers': [m.to_doc() for m in quest.teamMembers],
                'currentTeamSize': quest.team_size,
                'status': quest.status.value,
                'endTime': to_iso(quest.endTime),
            })
            txn.update(USERS, user_id, {
                'activeQuestId': quest_id,
                'activeQuestStartDate': to_iso(now),
            })
            return quest

        quest = self.store.run_transaction(_join)
        logger.info(
            f"User {user_id} joined quest {quest_id} "
            f"({quest.team_size}/{quest.maxTeamSize}, {quest.status.value})"
        )
        return quest

    def complete(self, quest_id: str, user_id: str, now: datetime | None = None) -> list[str]:
        """
        Complete a quest for its whole team.

        Every user whose active quest this is gets it cleared and a
        CompletedQuest record appended to their history. Under the
        ``members_only`` policy the caller must be one of those users.

        Returns:
            Ids of users who were credited with the completion

        Raises:
            QuestNotFound: If the quest doesn't exist
            UserNotFound: If the calling user doesn't exist
            QuestUnavailable: If the quest is already completed or expired
            NotAMember: If the policy is members_only and the caller isn't on it
        """
        now = now or utcnow()

        def _complete(txn: Transaction) -> list[str]:
            quest = _load_quest(txn, quest_id)
            caller = _load_user(txn, user_id)
            _ensure_available(quest)

            if (self.completion_policy == CompletionPolicy.MEMBERS_ONLY
                    and caller.get('activeQuestId') != quest_id):
                raise NotAMember("Only members of this quest can complete it")

            record = CompletedQuest(
                questId=quest_id,
                completedAt=to_iso(now),
                title=quest.title,
                teamSize=quest.team_size,
            )

            credited = []
            for user in txn.list(USERS):
                if user.get('activeQuestId') != quest_id:
                    continue
                history = list(user.get('completedQuests') or [])
                history.append(record.to_doc())
                txn.update(USERS, user['id'], {
                    'activeQuestId': None,
                    'activeQuestStartDate': None,
                    'completedQuests': history,
                })
                credited.append(user['id'])

            txn.update(QUESTS, quest_id, {
                'status': QuestStatus.COMPLETED.value,
                'completedAt': to_iso(now),
            })
            return credited

        credited = self.store.run_transaction(_complete)
        logger.info(f"Quest {quest_id} completed by {user_id}; credited {len(credited)} members")
        return credited

    def expire_sweep(self, now: datetime | None = None) -> list[str]:
        """
        Delete quests that ended long ago.

        A quest whose end time (or start time, without one) is more than the
        expiry window in the past is deleted after everyone still pointing at
        it has their active quest cleared.

        Returns:
            Ids of deleted quests
        """
        now = now or utcnow()

        def is_overdue(quest: Quest) -> bool:
            reference = quest.endTime or quest.startTime
            return reference is not None and now - reference > self.expiry

        def _expire(txn: Transaction, quest_id: str) -> bool:
            doc = txn.get(QUESTS, quest_id)
            if doc is None or not is_overdue(Quest.from_doc(doc)):
                return False
            for user in txn.list(USERS):
                if user.get('activeQuestId') == quest_id:
                    txn.update(USERS, user['id'], {
                        'activeQuestId': None,
                        'activeQuestStartDate': None,
                    })
            txn.delete(QUESTS, quest_id)
            return True

        deleted = []
        for doc in self.store.list(QUESTS):
            if not is_overdue(Quest.from_doc(doc)):
                continue
            if self.store.run_transaction(lambda txn: _expire(txn, doc['id'])):
                deleted.append(doc['id'])

        if deleted:
            logger.info(f"Expired and deleted {len(deleted)} quests: {deleted}")
        return deleted
