"""
Background sweeper for SideQuest.

Periodically expires quests that never got going and deletes quests that
ended long ago. Runs on a daemon thread; ``run_once`` does a single pass.
"""

import logging
import threading
from datetime import datetime, timedelta

from sidequest.catalog import DEFAULT_GRACE, QuestCatalog
from sidequest.errors import StoreError
from sidequest.lifecycle import QuestLifecycle
from sidequest.models import utcnow

logger = logging.getLogger(__name__)


class Sweeper:
    """Runs the catalog and lifecycle sweeps on an interval."""

    def __init__(
        self,
        catalog: QuestCatalog,
        lifecycle: QuestLifecycle,
        interval_seconds: float = 300,
        grace: timedelta = DEFAULT_GRACE,
    ):
        self.catalog = catalog
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.grace = grace
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self, now: datetime | None = None) -> dict[str, list[str]]:
        """
        One sweep pass.

        Returns:
            {'expired': ids marked expired, 'deleted': ids deleted}
        """
        now = now or utcnow()
        expired = self.catalog.sweep_stale(now, grace=self.grace)
        deleted = self.lifecycle.expire_sweep(now)
        return {'expired': expired, 'deleted': deleted}

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except StoreError as e:
                logger.error(f"Sweep failed, will retry next interval: {e}")
            self._stop.wait(self.interval_seconds)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sidequest-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Sweeper started (every {self.interval_seconds}s)")

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sweeper stopped")
