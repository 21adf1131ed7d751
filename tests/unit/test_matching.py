"""
Unit tests for matching module.
"""

from datetime import timedelta

import pytest

from sidequest.errors import QuestNotFound, UserNotFound
from sidequest.matching import MatchEngine
from sidequest.models import LEGACY_PREFERENCES, TEAMS


CODER = {
    'interests': ['coding', 'technology', 'learning'],
    'skillLevel': 2,
    'preferredTeamSize': 3,
    'availableHoursPerWeek': 10,
    'personalityTraits': {},
}

ARTIST = {
    'interests': ['art'],
    'skillLevel': 5,
    'preferredTeamSize': 6,
    'availableHoursPerWeek': 1,
    'personalityTraits': {'creative': 3},
}


@pytest.fixture
def engine(store, catalog, now):
    catalog.seed_demo_quests(now)
    return MatchEngine(store, catalog)


class TestLoadPreferences:
    """Test preference lookup."""

    def test_reads_user_document(self, engine, add_user):
        add_user('u1', preferences=CODER)

        prefs = engine.load_preferences('u1')

        assert prefs.interests == CODER['interests']
        assert prefs.availableHoursPerWeek == 10

    def test_falls_back_to_legacy_collection(self, engine, store, add_user):
        add_user('u1')
        store.set(LEGACY_PREFERENCES, 'u1', {**ARTIST, 'personalityTraits': ['creative', 'solo']})

        prefs = engine.load_preferences('u1')

        assert prefs.skillLevel == 5
        assert prefs.personalityTraits == {'creative': 1, 'solo': 1}

    def test_missing_preferences(self, engine, add_user):
        add_user('u1')

        assert engine.load_preferences('u1') is None
        assert engine.load_preferences('ghost') is None


class TestRecommendQuests:
    """Test quest recommendations."""

    def test_only_strong_matches(self, engine, add_user, now):
        add_user('u1', preferences=CODER)

        matches = engine.recommend_quests('u1', now=now)

        assert [m.quest.id for m in matches] == ['q1']
        assert matches[0].matchScore == 100.0

    def test_new_user_sees_everything(self, engine, add_user, now):
        """Users without preferences get every joinable quest."""
        add_user('u1')

        matches = engine.recommend_quests('u1', now=now)

        assert len(matches) == 6
        assert {m.matchScore for m in matches} == {75.0}

    def test_top_n_truncates(self, engine, add_user, now):
        add_user('u1')

        assert len(engine.recommend_quests('u1', top_n=2, now=now)) == 2

    def test_ties_keep_catalog_order(self, engine, add_user, now):
        add_user('u1')

        matches = engine.recommend_quests('u1', now=now)

        assert [m.quest.id for m in matches] == ['q1', 'q5', 'q2', 'q4', 'q6', 'q3']

    def test_threshold_is_exclusive(self, store, catalog, add_user, now):
        """A score equal to the threshold is not recommended."""
        catalog.seed_demo_quests(now)
        add_user('u1', preferences=CODER)

        engine = MatchEngine(store, catalog, quest_threshold=100)

        assert engine.recommend_quests('u1', now=now) == []

    def test_started_quests_are_skipped(self, engine, add_user, now):
        add_user('u1', preferences=CODER)

        assert engine.recommend_quests('u1', now=now + timedelta(hours=3)) == []


class TestRecommendTeammates:
    """Test teammate suggestions."""

    def test_ranks_compatible_free_users(self, engine, add_user):
        add_user('u1', preferences=CODER)
        add_user('u2', preferences=CODER)
        add_user('u3', preferences=ARTIST)
        add_user('u4', preferences=CODER, activeQuestId='q2')
        add_user('u5')

        matches = engine.recommend_teammates('u1', 'q1')

        assert [m.userId for m in matches] == ['u2']
        assert matches[0].compatibilityScore == 80.0
        assert matches[0].questMatchScore == 100.0
        assert matches[0].combinedScore == 90.0

    def test_includes_legacy_profiles(self, engine, store, add_user):
        add_user('u1', preferences=CODER)
        store.set(LEGACY_PREFERENCES, 'old', {**CODER, 'displayName': 'Old Timer'})

        matches = engine.recommend_teammates('u1', 'q1')

        assert [(m.userId, m.displayName) for m in matches] == [('old', 'Old Timer')]

    def test_limit(self, engine, add_user):
        add_user('u1', preferences=CODER)
        for user_id in ('u2', 'u3', 'u4'):
            add_user(user_id, preferences=CODER)

        assert len(engine.recommend_teammates('u1', 'q1', limit=2)) == 2

    def test_compatibility_at_threshold_is_included(self, engine, add_user):
        """A candidate scoring exactly the threshold still makes the list."""
        add_user('u1', preferences=CODER)
        add_user('u2', preferences={**CODER, 'skillLevel': 3})

        matches = engine.recommend_teammates('u1', 'q1')

        assert [m.userId for m in matches] == ['u2']
        assert matches[0].compatibilityScore == 70.0

    def test_custom_threshold_is_inclusive(self, store, engine, catalog, add_user):
        add_user('u1', preferences=CODER)
        add_user('u2', preferences=CODER)

        at_score = MatchEngine(store, catalog, teammate_threshold=80)
        above_score = MatchEngine(store, catalog, teammate_threshold=80.5)

        assert [m.userId for m in at_score.recommend_teammates('u1', 'q1')] == ['u2']
        assert above_score.recommend_teammates('u1', 'q1') == []

    def test_unknown_quest(self, engine, add_user):
        add_user('u1', preferences=CODER)

        with pytest.raises(QuestNotFound):
            engine.recommend_teammates('u1', 'nope')


class TestFormTeam:
    """Test recording formed teams."""

    def test_stores_team_with_score(self, engine, store, add_user, now):
        add_user('u1', preferences=CODER)
        add_user('u2', preferences=CODER)

        team = engine.form_team('u1', 'q1', ['u2'], now=now)

        assert team['members'] == ['u1', 'u2']
        assert team['status'] == 'forming'
        assert team['matchScore'] == 90
        assert store.get(TEAMS, team['id'])['questId'] == 'q1'

    def test_unknown_member(self, engine, add_user, now):
        add_user('u1', preferences=CODER)

        with pytest.raises(UserNotFound):
            engine.form_team('u1', 'q1', ['ghost'], now=now)
