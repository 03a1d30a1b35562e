"""Listing write path and the trending service.

``create_listing``/``update_listing`` compute the auction window before
anything is persisted, so a listing with an invalid deadline is never
written. ``TrendingService`` owns the re-evaluation queue, the scheduled
sweep and its counters; one instance is built per process and handed to
the HTTP layer.
"""
import threading
import time
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import crud
from .auction import (
    DEADLINE_FIELDS,
    auction_fields,
    cleared_auction_fields,
    current_settings,
    merge_settings,
    price_fields,
)
from .config import TRENDING_CRON_SCHEDULE, TRENDING_QUEUE_NAME, JobPolicy, TrendingThresholds
from .db import SessionLocal
from .errors import NotFoundError, SweepInProgressError, TransientStoreError, ValidationError
from .models import Listing, SALE_TYPE_AUCTION, SALE_TYPE_FIXED, SALE_TYPES
from .queue import create_queue
from .scheduler import register_jobs
from .stats import SweepStats
from .trending import should_be_trending
from .utils import logger, now_utc, retry


def _check_fixed_price(price):
    if price is None:
        raise ValidationError("Fixed price is required when sale_type is 'fixed'")
    if price <= 0:
        raise ValidationError("fixed_price must be positive")


def create_listing(db: Session, payload: Dict[str, Any], now: Optional[datetime] = None) -> Listing:
    data = dict(payload)
    settings = data.pop("auction_settings", None) or {}
    sale_type = data.get("sale_type") or SALE_TYPE_FIXED
    if sale_type not in SALE_TYPES:
        raise ValidationError(f"Unknown sale_type: {sale_type}")
    data["sale_type"] = sale_type
    if sale_type == SALE_TYPE_AUCTION:
        if not settings:
            raise ValidationError("auction_settings are required when sale_type is 'auction'")
        data.update(auction_fields(settings, now))
    else:
        _check_fixed_price(data.get("fixed_price"))
        data.update(cleared_auction_fields())
    obj = crud.create_listing(db, data)
    logger.info("Created %s listing %s", sale_type, obj.id)
    return obj


def update_listing(db: Session, listing_id: int, updates: Dict[str, Any], now: Optional[datetime] = None):
    obj = crud.get_listing(db, listing_id, include_deleted=False)
    if obj is None:
        raise NotFoundError(listing_id)
    data = dict(updates)
    patch = data.pop("auction_settings", None)
    sale_type = data.get("sale_type", obj.sale_type)
    if sale_type not in SALE_TYPES:
        raise ValidationError(f"Unknown sale_type: {sale_type}")

    if sale_type == SALE_TYPE_AUCTION:
        switching = obj.sale_type != SALE_TYPE_AUCTION
        if switching and not patch:
            raise ValidationError("auction_settings are required when sale_type is 'auction'")
        patch = patch or {}
        if switching or any(k in patch for k in DEADLINE_FIELDS):
            settings = merge_settings(current_settings(obj), patch)
            data.update(auction_fields(settings, now))
        elif patch:
            data.update(price_fields(obj, patch, now))
    else:
        _check_fixed_price(data.get("fixed_price", obj.fixed_price))
        if obj.sale_type == SALE_TYPE_AUCTION:
            data.update(cleared_auction_fields())

    return crud.update_listing(db, listing_id, data)


class ReconcileResult(NamedTuple):
    found: bool
    is_trending: bool = False
    updated: bool = False


@retry(OperationalError, tries=3, delay=1, backoff=2)
def _load_sweep_candidates(db: Session, min_views: int):
    try:
        return crud.sweep_candidates(db, min_views)
    except OperationalError:
        # the failed transaction has to be discarded before the session can be reused
        db.rollback()
        raise


class TrendingService:
    def __init__(self, session_factory=SessionLocal, thresholds: TrendingThresholds = None,
                 job_policy: JobPolicy = None, scheduler=None, schedule: str = TRENDING_CRON_SCHEDULE):
        self.session_factory = session_factory
        self.thresholds = thresholds or TrendingThresholds.from_env()
        self.job_policy = job_policy or JobPolicy.from_env()
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.schedule = schedule
        self.queue = create_queue(TRENDING_QUEUE_NAME, self.scheduler)
        self.queue.register_worker(self._handle_job)
        self.stats = SweepStats()
        self._sweep_lock = threading.Lock()
        self._started = time.monotonic()

    # lifecycle

    def start(self):
        register_jobs(self.scheduler, self)
        self.scheduler.start()
        logger.info("Trending service started; sweep schedule %s", self.schedule)

    def shutdown(self):
        """Stop dispatching, run what is still queued, then wait for running jobs.

        Queued evaluations are run once each with no retries. Anything that
        still fails is left for the next sweep to correct.
        """
        if not self.scheduler.running:
            return
        self.scheduler.pause()
        waiting = len(self.queue.waiting_jobs())
        drained = self.queue.drain()
        if waiting:
            logger.info("Drained %d of %d queued trending updates before shutdown", drained, waiting)
        self.scheduler.shutdown(wait=True)
        logger.info("Trending service stopped")

    # view tracking

    def enqueue(self, listing_id: int):
        policy = self.job_policy
        try:
            self.queue.add_job(
                listing_id,
                {"listing_id": listing_id},
                delay=policy.delay_seconds,
                max_attempts=policy.max_attempts,
                backoff=policy.backoff_seconds,
            )
        except Exception as e:
            # a lost job only delays correction until the next sweep
            logger.error("Could not enqueue trending update for listing %s: %s", listing_id, e)

    def on_listing_viewed(self, db: Session, listing_id: int):
        if not crud.increment_view_count(db, listing_id):
            raise NotFoundError(listing_id)
        self.enqueue(listing_id)

    # evaluation

    def _handle_job(self, payload: Dict[str, Any]):
        try:
            self.reconcile_listing(int(payload["listing_id"]))
        except OperationalError as e:
            raise TransientStoreError(str(e)) from e

    def _evaluate(self, db: Session, listing: Listing) -> bool:
        population = crud.trending_population(db, exclude_id=listing.id)
        return should_be_trending(listing, self.thresholds, population)

    def reconcile_listing(self, listing_id: int, db: Session = None) -> ReconcileResult:
        own = db is None
        db = db or self.session_factory()
        try:
            listing = db.get(Listing, listing_id, populate_existing=True)
            if listing is None:
                logger.info("Listing %s not found for trending update", listing_id)
                return ReconcileResult(found=False)
            decision = self._evaluate(db, listing)
            if bool(listing.is_trending) == decision:
                return ReconcileResult(found=True, is_trending=decision)
            crud.set_trending(db, listing_id, decision)
            logger.info("Listing %s trending status updated to: %s", listing_id, decision)
            return ReconcileResult(found=True, is_trending=decision, updated=True)
        finally:
            if own:
                db.close()

    def sweep_all(self) -> Dict[str, int]:
        if not self._sweep_lock.acquire(blocking=False):
            raise SweepInProgressError("Trending sweep already running")
        try:
            return self._sweep()
        finally:
            self._sweep_lock.release()

    def _sweep(self) -> Dict[str, int]:
        logger.info("Starting bulk trending status update...")
        updated_count = trending_count = failed_count = 0
        db = self.session_factory()
        try:
            ids = _load_sweep_candidates(db, self.thresholds.min_views)
            for listing_id in ids:
                try:
                    listing = db.get(Listing, listing_id, populate_existing=True)
                    if listing is None:
                        continue
                    decision = self._evaluate(db, listing)
                    if bool(listing.is_trending) != decision:
                        crud.set_trending(db, listing_id, decision)
                        updated_count += 1
                    if decision:
                        trending_count += 1
                except Exception:
                    db.rollback()
                    failed_count += 1
                    logger.exception("Trending sweep failed for listing %s, continuing", listing_id)
        finally:
            db.close()
        logger.info(
            "Bulk trending update completed: %d products updated, %d currently trending, %d failed",
            updated_count, trending_count, failed_count,
        )
        return {"updatedCount": updated_count, "trendingCount": trending_count, "failedCount": failed_count}

    def run_scheduled_sweep(self) -> Optional[Dict[str, int]]:
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Skipping trending sweep: previous run still in progress")
            return None
        try:
            started = now_utc()
            self.stats.record_start(started)
            try:
                result = self._sweep()
            except Exception:
                self.stats.record_failure()
                logger.exception("Critical error in trending update sweep")
                return None
        finally:
            self._sweep_lock.release()
        self.stats.record_success(result["updatedCount"])
        duration_ms = int((now_utc() - started).total_seconds() * 1000)
        logger.info(
            "Trending sweep finished in %dms: %d updated, %d trending",
            duration_ms, result["updatedCount"], result["trendingCount"],
        )
        return result

    # admin

    def set_trending(self, db: Session, listing_id: int, value: bool):
        if not crud.set_trending(db, listing_id, value):
            raise NotFoundError(listing_id)
        logger.info("Listing %s trending status manually set to: %s", listing_id, value)

    def close_expired_auctions(self) -> int:
        db = self.session_factory()
        try:
            closed = crud.close_expired_auctions(db, now_utc())
        finally:
            db.close()
        logger.info("Bidding closed for %d products", closed)
        return closed

    def health(self) -> Dict[str, Any]:
        return {
            "status": "running" if self.scheduler.running else "stopped",
            "schedule": self.schedule,
            "stats": self.stats.snapshot(),
            "uptime": round(time.monotonic() - self._started, 3),
        }
