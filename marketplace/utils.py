"""Shared utilities: logging, retry decorator and UTC helpers.

Every module logs through the single ``logger`` defined here so the
request path, the queue workers and the scheduled sweep share one format.
"""
import os
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from dotenv import load_dotenv

load_dotenv()

UTC = timezone.utc


def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("marketplace")


def backoff_delay(attempt: int, base: float, factor: float = 2) -> float:
    """Delay before retry number ``attempt`` (1-based): base, base*2, base*4..."""
    return base * (factor ** max(0, attempt - 1))


def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger):
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error in %s: %s, retrying in %s sec", f.__name__, e, mdelay)
                    time.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry


def now_utc() -> datetime:
    return datetime.now(UTC)


def to_aware_utc(dt):
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
