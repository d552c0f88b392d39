"""Timer-driven automatic fetching."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .config import DEFAULT_CUSTOM_INTERVAL, FETCH_INTERVALS
from .models import GlobalConfig
from .runner import FeedSyncRunner

logger = logging.getLogger(__name__)


def resolve_interval_seconds(config: GlobalConfig) -> Optional[float]:
    """Return seconds between automatic fetches, or None for manual mode."""
    if config.fetch_interval == "custom":
        try:
            minutes = int(config.custom_interval_minutes)
        except (TypeError, ValueError):
            minutes = 0
        return float((minutes or DEFAULT_CUSTOM_INTERVAL) * 60)

    minutes = FETCH_INTERVALS.get(config.fetch_interval)
    if minutes is None:
        return None
    return float(minutes * 60)


def run_scheduler(
    runner: FeedSyncRunner,
    interval: float,
    stop_event: Optional[threading.Event] = None,
    max_runs: Optional[int] = None,
) -> int:
    """Run a batch fetch every ``interval`` seconds until stopped.

    The first run starts after one full interval. Timer runs go through the
    same guarded entry point as manual fetches. Returns the number of runs.
    """
    stop_event = stop_event or threading.Event()
    runs = 0
    logger.info("Auto-fetch scheduled every %.0f seconds", interval)
    while max_runs is None or runs < max_runs:
        if stop_event.wait(interval):
            break
        logger.info("Auto-fetch triggered")
        runner.fetch_all_feeds()
        runs += 1
    logger.info("Auto-fetch stopped after %d runs", runs)
    return runs
