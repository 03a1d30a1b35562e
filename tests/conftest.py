import os

# must be set before marketplace.db is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_marketplace.db")

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from marketplace import models
from marketplace.config import JobPolicy, TrendingThresholds
from marketplace.db import Base, engine, SessionLocal
from marketplace.services import TrendingService


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def thresholds():
    return TrendingThresholds(min_views=10, max_trending_slots=None)


@pytest.fixture()
def service(db, thresholds):
    # never started: queued jobs stay pending until a test runs them
    svc = TrendingService(
        session_factory=SessionLocal,
        thresholds=thresholds,
        job_policy=JobPolicy(delay_seconds=5, max_attempts=3, backoff_seconds=2),
        scheduler=BackgroundScheduler(timezone="UTC"),
        schedule="*/5 * * * *",
    )
    yield svc
    svc.shutdown()


@pytest.fixture()
def make_listing(db):
    def _make(**kw):
        data = {"title": "Item", "sale_type": models.SALE_TYPE_FIXED, "fixed_price": 10}
        data.update(kw)
        obj = models.Listing(**data)
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    return _make
