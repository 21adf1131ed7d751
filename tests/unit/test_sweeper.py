"""
Unit tests for sweeper module.
"""

import time
from datetime import timedelta
from unittest.mock import Mock

import pytest

from sidequest.errors import StoreUnavailable
from sidequest.lifecycle import QuestLifecycle
from sidequest.models import QuestStatus
from sidequest.sweeper import Sweeper


@pytest.fixture
def sweeper(store, catalog):
    return Sweeper(catalog, QuestLifecycle(store))


class TestRunOnce:
    """Test a single sweep pass."""

    def test_nothing_to_do(self, sweeper, catalog, now):
        catalog.seed_demo_quests(now)

        assert sweeper.run_once(now) == {'expired': [], 'deleted': []}

    def test_expires_then_deletes(self, sweeper, catalog, now):
        catalog.seed_demo_quests(now)

        result = sweeper.run_once(now + timedelta(hours=30))

        assert sorted(result['expired']) == ['q1', 'q2', 'q3', 'q4', 'q5', 'q6']
        assert sorted(result['deleted']) == ['q1', 'q2', 'q4', 'q5']
        assert sorted(q.id for q in catalog.all()) == ['q3', 'q6']
        assert all(q.status == QuestStatus.EXPIRED for q in catalog.all())


class TestBackgroundThread:
    """Test starting and stopping the sweeper thread."""

    def test_start_and_stop(self, store, catalog):
        sweeper = Sweeper(catalog, QuestLifecycle(store), interval_seconds=60)

        sweeper.start()
        assert sweeper.running is True
        sweeper.start()

        sweeper.stop()
        assert sweeper.running is False

    def test_store_errors_do_not_kill_the_loop(self):
        catalog = Mock()
        catalog.sweep_stale.side_effect = StoreUnavailable("Connection error")
        lifecycle = Mock()
        sweeper = Sweeper(catalog, lifecycle, interval_seconds=0.01)

        sweeper.start()
        deadline = time.monotonic() + 5
        while catalog.sweep_stale.call_count < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        sweeper.stop()

        assert catalog.sweep_stale.call_count >= 2
        assert sweeper.running is False
