from datetime import timedelta

import pytest
from apscheduler.jobstores.base import ConflictingIdError
from apscheduler.schedulers.background import BackgroundScheduler

from marketplace.queue import create_queue
from marketplace.utils import now_utc


@pytest.fixture()
def scheduler():
    # not started, so jobs stay pending and the test drives them
    return BackgroundScheduler(timezone="UTC")


@pytest.fixture()
def running_scheduler():
    # started but paused: job ids go through the real job store, nothing fires
    s = BackgroundScheduler(timezone="UTC")
    s.start(paused=True)
    yield s
    s.shutdown(wait=False)


def boom(payload):
    raise RuntimeError("store down")


def queued(scheduler):
    return [j.kwargs["job"] for j in scheduler.get_jobs()]


def test_job_is_delayed(scheduler):
    q = create_queue("q", scheduler)
    q.register_worker(lambda payload: None)
    before = now_utc()
    job = q.add_job(7, {"listing_id": 7}, delay=5)
    assert job.scheduled_at >= before + timedelta(seconds=5)
    assert job.job_id == "q:7"
    assert [j.job_id for j in queued(scheduler)] == ["q:7"]


def test_burst_coalesces_into_one_pending_job(scheduler):
    q = create_queue("q", scheduler)
    q.register_worker(lambda payload: None)
    first = q.add_job(7, {"listing_id": 7})
    for _ in range(5):
        assert q.add_job(7, {"listing_id": 7}) == first
    q.add_job(8, {"listing_id": 8})
    assert sorted(j.key for j in queued(scheduler)) == ["7", "8"]


def test_failed_attempt_is_retried_with_exponential_backoff(scheduler):
    q = create_queue("q", scheduler)

    def boom(payload):
        raise RuntimeError("store down")

    q.register_worker(boom)
    job = q.add_job(1, {"listing_id": 1}, max_attempts=3, backoff=2)

    assert q.run_job(job) is False
    retry1 = [j for j in queued(scheduler) if j.attempts_made == 1][0]
    assert retry1.job_id == f"q:1:{job.chain}:retry1"
    assert retry1.scheduled_at - now_utc() <= timedelta(seconds=2)

    assert q.run_job(retry1) is False
    retry2 = [j for j in queued(scheduler) if j.attempts_made == 2][0]
    assert retry2.scheduled_at - now_utc() > timedelta(seconds=2)

    assert q.run_job(retry2) is False
    assert q.dropped == 1
    assert not [j for j in queued(scheduler) if j.attempts_made == 3]


def test_retry_pending_does_not_block_fresh_enqueue(scheduler):
    q = create_queue("q", scheduler)
    calls = []

    def flaky(payload):
        calls.append(payload)
        if len(calls) == 1:
            raise RuntimeError("transient")

    q.register_worker(flaky)
    job = q.add_job(3, {"listing_id": 3})
    scheduler.remove_job("q:3")
    q.run_job(job)
    fresh = q.add_job(3, {"listing_id": 3})
    assert fresh.attempts_made == 0
    assert fresh != job


def test_successful_job_counts_completion(scheduler):
    q = create_queue("q", scheduler)
    seen = []
    q.register_worker(seen.append)
    job = q.add_job(5, {"listing_id": 5})
    assert q.run_job(job) is True
    assert seen == [{"listing_id": 5}]
    assert q.completed == 1


def test_running_without_worker_is_an_error(scheduler):
    q = create_queue("q", scheduler)
    job = q.add_job(5, {"listing_id": 5})
    with pytest.raises(RuntimeError):
        q.run_job(job)


def test_second_failing_chain_for_same_key_is_retried(running_scheduler):
    q = create_queue("q", running_scheduler)
    q.register_worker(boom)

    first = q.add_job(1, {"listing_id": 1})
    running_scheduler.remove_job(first.job_id)
    assert q.run_job(first) is False

    # a new view arrives while the first retry is still waiting
    second = q.add_job(1, {"listing_id": 1})
    assert second.chain != first.chain
    running_scheduler.remove_job(second.job_id)
    assert q.run_job(second) is False

    retries = [j for j in q.waiting_jobs() if j.attempts_made == 1]
    assert sorted(j.chain for j in retries) == sorted([first.chain, second.chain])
    assert q.dropped == 0


def test_retry_that_cannot_be_scheduled_is_dropped(scheduler, monkeypatch):
    q = create_queue("q", scheduler)
    q.register_worker(boom)
    job = q.add_job(2, {"listing_id": 2})

    def refuse(retry):
        raise ConflictingIdError(retry.job_id)

    monkeypatch.setattr(q, "_schedule", refuse)
    assert q.run_job(job) is False
    assert q.dropped == 1


def test_drain_runs_each_waiting_job_once(running_scheduler):
    q = create_queue("q", running_scheduler)
    seen = []

    def worker(payload):
        seen.append(payload["listing_id"])
        if payload["listing_id"] == 2:
            raise RuntimeError("store down")

    q.register_worker(worker)
    q.add_job(1, {"listing_id": 1}, delay=60)
    q.add_job(2, {"listing_id": 2}, delay=60)

    assert q.drain() == 1
    assert sorted(seen) == [1, 2]
    assert q.waiting_jobs() == []
    assert q.completed == 1 and q.dropped == 1
