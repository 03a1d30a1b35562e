"""Counters for the scheduled trending sweep, kept for the life of the process."""
from datetime import datetime
from typing import Any, Dict, Optional

from .utils import now_utc


class SweepStats:
    def __init__(self):
        self.last_run: Optional[datetime] = None
        self.last_successful_run: Optional[datetime] = None
        self.total_runs = 0
        self.successful_runs = 0
        self.failed_runs = 0
        self.products_updated = 0

    def record_start(self, at: Optional[datetime] = None):
        self.last_run = at or now_utc()
        self.total_runs += 1

    def record_success(self, updated_count: int, at: Optional[datetime] = None):
        self.products_updated += updated_count
        self.successful_runs += 1
        self.last_successful_run = at or now_utc()

    def record_failure(self):
        self.failed_runs += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "lastSuccessfulRun": self.last_successful_run.isoformat() if self.last_successful_run else None,
            "totalRuns": self.total_runs,
            "successfulRuns": self.successful_runs,
            "failedRuns": self.failed_runs,
            "productsUpdated": self.products_updated,
        }
