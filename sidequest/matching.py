"""
Match engine for SideQuest.

Ranks joinable quests for a user and candidate teammates for a (user, quest)
pair by combining the catalog with the scoring functions. Results are
computed on demand and never stored, except for teams formed explicitly.
"""

import logging
from datetime import datetime

from sidequest.catalog import QuestCatalog
from sidequest.errors import UserNotFound
from sidequest.models import (
    LEGACY_PREFERENCES,
    TEAMS,
    USERS,
    QuestMatch,
    TeammateMatch,
    UserPreferences,
    to_iso,
    utcnow,
)
from sidequest.scoring import quest_match_score, team_match_score, user_compatibility
from sidequest.store import DocumentStore

logger = logging.getLogger(__name__)

# Score shown to users with no preferences on record
NEW_USER_SCORE = 75.0


class MatchEngine:
    """Quest and teammate recommendations."""

    def __init__(
        self,
        store: DocumentStore,
        catalog: QuestCatalog,
        quest_threshold: float = 70,
        teammate_threshold: float = 70,
    ):
        self.store = store
        self.catalog = catalog
        self.quest_threshold = quest_threshold
        self.teammate_threshold = teammate_threshold

    def load_preferences(self, user_id: str) -> UserPreferences | None:
        """
        Preferences for a user, or None if they have none on record.

        Reads the ``preferences`` map of the user document first and falls
        back to the legacy ``userPreferences`` collection.
        """
        user = self.store.get(USERS, user_id)
        if user is not None and user.get('preferences'):
            return UserPreferences.from_doc(user['preferences'])

        legacy = self.store.get(LEGACY_PREFERENCES, user_id)
        if legacy is not None:
            return UserPreferences.from_doc(legacy)
        return None

    def recommend_quests(self, user_id: str, top_n: int = 6,
                         now: datetime | None = None) -> list[QuestMatch]:
        """
        Best joinable quests for a user, highest score first.

        Users without preferences see every joinable quest at a flat
        ``NEW_USER_SCORE``; everyone else only sees quests scoring above the
        threshold. Ties keep catalog order.
        """
        prefs = self.load_preferences(user_id)

        matches = []
        for quest in self.catalog.list_joinable(now):
            if prefs is None:
                matches.append(QuestMatch(quest=quest, matchScore=NEW_USER_SCORE))
                continue
            score = quest_match_score(prefs, quest)
            if score > self.quest_threshold:
                matches.append(QuestMatch(quest=quest, matchScore=score))

        matches.sort(key=lambda m: m.matchScore, reverse=True)
        return matches[:top_n]

    def _candidates(self, exclude_user_id: str) -> list[tuple[str, str, UserPreferences]]:
        """(user id, display name, preferences) for users free to team up."""
        candidates = []
        seen = set()
        for user in self.store.list(USERS):
            seen.add(user['id'])
            if user['id'] == exclude_user_id or user.get('activeQuestId'):
                continue
            if not user.get('preferences'):
                continue
            candidates.append((
                user['id'],
                user.get('displayName') or user['id'],
                UserPreferences.from_doc(user['preferences']),
            ))

        for legacy in self.store.list(LEGACY_PREFERENCES):
            if legacy['id'] in seen or legacy['id'] == exclude_user_id:
                continue
            candidates.append((
                legacy['id'],
                legacy.get('displayName') or legacy['id'],
                UserPreferences.from_doc(legacy),
            ))
        return candidates

    def recommend_teammates(self, user_id: str, quest_id: str, limit: int = 2) -> list[TeammateMatch]:
        """
        Best teammates for a user on a quest.

        Candidates must clear the threshold on both compatibility with the
        user and their own fit for the quest; they are ranked by the average
        of the two.

        Raises:
            QuestNotFound: If the quest doesn't exist
        """
        quest = self.catalog.get(quest_id)
        requester = self.load_preferences(user_id) or UserPreferences.default()

        matches = []
        for candidate_id, name, prefs in self._candidates(user_id):
            compatibility = user_compatibility(requester, prefs)
            fit = quest_match_score(prefs, quest)
            if compatibility >= self.teammate_threshold and fit >= self.teammate_threshold:
                matches.append(TeammateMatch(
                    userId=candidate_id,
                    displayName=name,
                    preferences=prefs,
                    compatibilityScore=compatibility,
                    questMatchScore=fit,
                ))

        matches.sort(key=lambda m: m.combinedScore, reverse=True)
        return matches[:limit]

    def form_team(self, user_id: str, quest_id: str, teammate_ids: list[str],
                  now: datetime | None = None) -> dict:
        """
        Record a team for a quest with its overall match score.

        Returns:
            The stored team document (with ``id``)

        Raises:
            QuestNotFound: If the quest doesn't exist
            UserNotFound: If any member has neither a user document nor
                legacy preferences
        """
        now = now or utcnow()
        quest = self.catalog.get(quest_id)

        members = [user_id] + [t for t in teammate_ids if t != user_id]
        member_prefs = []
        for member_id in members:
            if self.store.get(USERS, member_id) is None and self.store.get(LEGACY_PREFERENCES, member_id) is None:
                raise UserNotFound(member_id)
            member_prefs.append(self.load_preferences(member_id) or UserPreferences.default())

        team = {
            'questId': quest_id,
            'members': members,
            'status': 'forming',
            'createdAt': to_iso(now),
            'matchScore': team_match_score(member_prefs, quest),
        }
        team_id = self.store.add(TEAMS, team)
        logger.info(f"Team {team_id} formed for quest {quest_id}: {members} (score {team['matchScore']})")
        return {'id': team_id, **team}
