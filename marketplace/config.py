"""Environment-driven settings for the trending and auction subsystems."""
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


# sweep cadence; also the upper bound on how stale is_trending may get
TRENDING_CRON_SCHEDULE = os.getenv("TRENDING_CRON_SCHEDULE", "* * * * *")
AUCTION_CLOSER_INTERVAL_SECONDS = _int_env("AUCTION_CLOSER_INTERVAL_SECONDS", 60)

TRENDING_QUEUE_NAME = "trending-update-queue"


@dataclass(frozen=True)
class TrendingThresholds:
    min_views: int = 10
    # None means unbounded
    max_trending_slots: Optional[int] = None

    @classmethod
    def from_env(cls) -> "TrendingThresholds":
        slots = _int_env("TRENDING_MAX_SLOTS", 0)
        return cls(
            min_views=_int_env("TRENDING_MIN_VIEWS", 10),
            max_trending_slots=slots if slots > 0 else None,
        )


@dataclass(frozen=True)
class JobPolicy:
    delay_seconds: float = 5.0
    max_attempts: int = 3
    backoff_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> "JobPolicy":
        return cls(
            delay_seconds=_float_env("TRENDING_JOB_DELAY_SECONDS", 5.0),
            max_attempts=max(1, _int_env("TRENDING_JOB_ATTEMPTS", 3)),
            backoff_seconds=_float_env("TRENDING_JOB_BACKOFF_SECONDS", 2.0),
        )
