"""Tests for the job scheduler."""

import threading
import time
from concurrent.futures import CancelledError

import pytest

from home_reactor.core.config import RuntimeConfig
from home_reactor.core.scheduler import (
    JobHandle,
    JobScheduler,
    ScheduledPool,
    WorkerPool,
    interrupted,
)


def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll a predicate until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class Counter:
    """Thread-safe call counter usable as a job."""

    def __init__(self) -> None:
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            self.count += 1
            return self.count


OWNER_A = "module.a"
OWNER_B = "module.b"


class TestSubmit:
    """Tests for immediate execution."""

    def test_submit_runs_job(self, scheduler):
        """Test that a submitted job runs and returns its result."""
        handle = scheduler.submit(lambda: 42)

        assert handle.result(timeout=2.0) == 42
        assert handle.done()

    def test_submit_many_jobs(self, scheduler):
        """Test that many jobs all run."""
        counter = Counter()
        handles = [scheduler.submit(counter) for _ in range(50)]

        for h in handles:
            h.result(timeout=2.0)
        assert counter.count == 50

    def test_failing_job_keeps_pool_alive(self, scheduler):
        """Test that a raising job does not kill its worker."""

        def boom():
            raise ValueError("boom")

        failed = scheduler.submit(boom)
        with pytest.raises(ValueError):
            failed.result(timeout=2.0)

        assert scheduler.submit(lambda: "ok").result(timeout=2.0) == "ok"

    def test_jobs_run_in_parallel(self, scheduler):
        """Test that the pool grows beyond one worker when busy."""
        barrier = threading.Barrier(3, timeout=2.0)
        handles = [scheduler.submit(barrier.wait) for _ in range(3)]

        for h in handles:
            h.result(timeout=3.0)

    def test_submit_before_activate(self):
        """Test that an inactive scheduler rejects jobs."""
        sched = JobScheduler()

        with pytest.raises(RuntimeError):
            sched.submit(lambda: None)
        with pytest.raises(RuntimeError):
            sched.submit_delayed(OWNER_A, lambda: None, 0.1)


class TestDelayed:
    """Tests for submit_delayed()."""

    def test_delayed_job_runs_after_delay(self, scheduler):
        """Test that a delayed job does not run early."""
        ran_at = []
        start = time.monotonic()

        handle = scheduler.submit_delayed(OWNER_A, lambda: ran_at.append(time.monotonic()), 0.1)

        handle.result(timeout=2.0)
        assert ran_at[0] - start >= 0.09

    def test_contains_jobs_after_submit(self, scheduler):
        """Test that the owner is tracked after submission."""
        assert not scheduler.contains_jobs(OWNER_A)

        scheduler.submit_delayed(OWNER_A, lambda: None, 1.0)

        assert scheduler.contains_jobs(OWNER_A)
        assert not scheduler.contains_jobs(OWNER_B)

    def test_cancel_before_run(self, scheduler):
        """Test that cancelling at 50ms prevents a 100ms job from running."""
        counter = Counter()
        handle = scheduler.submit_delayed(OWNER_A, counter, 0.1)

        time.sleep(0.05)
        scheduler.cancel_jobs(OWNER_A)
        time.sleep(0.15)

        assert counter.count == 0
        assert handle.cancelled()
        with pytest.raises(CancelledError):
            handle.result(timeout=0.1)

    def test_cancel_jobs_clears_owner(self, scheduler):
        """Test that contains_jobs() is false after cancel_jobs()."""
        scheduler.submit_delayed(OWNER_A, lambda: None, 1.0)
        scheduler.submit_delayed(OWNER_A, lambda: None, 1.0)

        scheduler.cancel_jobs(OWNER_A)

        assert not scheduler.contains_jobs(OWNER_A)

    def test_cancel_jobs_only_affects_owner(self, scheduler):
        """Test that other owners' jobs survive."""
        a = Counter()
        b = Counter()
        scheduler.submit_delayed(OWNER_A, a, 0.05)
        handle_b = scheduler.submit_delayed(OWNER_B, b, 0.05)

        scheduler.cancel_jobs(OWNER_A)
        handle_b.result(timeout=2.0)

        assert a.count == 0
        assert b.count == 1

    def test_cancel_jobs_without_jobs(self, scheduler):
        """Test that cancelling an unknown owner is a no-op."""
        scheduler.cancel_jobs("nobody")

        assert not scheduler.contains_jobs("nobody")

    def test_cancel_completed_job(self, scheduler):
        """Test that cancelling a finished job is a no-op."""
        handle = scheduler.submit_delayed(OWNER_A, lambda: "done", 0.0)
        assert handle.result(timeout=2.0) == "done"

        assert handle.cancel() is False
        scheduler.cancel_jobs(OWNER_A)

    def test_negative_delay_rejected(self, scheduler):
        """Test that negative delays are rejected."""
        with pytest.raises(ValueError):
            scheduler.submit_delayed(OWNER_A, lambda: None, -1)


class TestRepeating:
    """Tests for submit_repeating()."""

    def test_runs_immediately_and_repeats(self, scheduler):
        """Test that a repeating job runs at once and then again."""
        counter = Counter()

        scheduler.submit_repeating(OWNER_A, counter, 0.02)

        assert wait_until(lambda: counter.count >= 3)

    def test_cancel_stops_repetition(self, scheduler):
        """Test that no invocation is observed after cancellation."""
        counter = Counter()
        scheduler.submit_repeating(OWNER_A, counter, 0.01)
        assert wait_until(lambda: counter.count >= 2)

        scheduler.cancel_jobs(OWNER_A)
        time.sleep(0.05)  # grace period for an in-flight run
        after_cancel = counter.count
        time.sleep(0.1)

        assert counter.count == after_cancel
        assert not scheduler.contains_jobs(OWNER_A)

    def test_fixed_delay_semantics(self, scheduler):
        """Test that the interval is measured from the end of the previous run."""
        starts = []

        def slow():
            starts.append(time.monotonic())
            time.sleep(0.05)

        handle = scheduler.submit_repeating(OWNER_A, slow, 0.05)
        assert wait_until(lambda: len(starts) >= 3)
        handle.cancel()

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        # run time (0.05) + interval (0.05)
        assert all(gap >= 0.09 for gap in gaps)

    def test_interrupt_running_job(self, scheduler):
        """Test that a running job observes the interrupt flag."""
        started = threading.Event()
        stopped = threading.Event()

        def long_job():
            started.set()
            deadline = time.monotonic() + 2.0
            while time.monotonic() < deadline:
                if interrupted():
                    stopped.set()
                    return
                time.sleep(0.01)

        handle = scheduler.submit_repeating(OWNER_A, long_job, 1.0)
        assert started.wait(2.0)

        scheduler.cancel_jobs(OWNER_A)

        assert stopped.wait(2.0)
        assert handle.interrupted()
        assert wait_until(handle.done)

    def test_failing_run_stops_repetition(self, scheduler):
        """Test that a raising run suppresses further runs."""
        counter = Counter()

        def flaky():
            counter()
            raise RuntimeError("sensor offline")

        handle = scheduler.submit_repeating(OWNER_A, flaky, 0.01)

        with pytest.raises(RuntimeError):
            handle.result(timeout=2.0)
        time.sleep(0.05)
        assert counter.count == 1

    def test_non_positive_interval_rejected(self, scheduler):
        """Test that the interval must be positive."""
        with pytest.raises(ValueError):
            scheduler.submit_repeating(OWNER_A, lambda: None, 0)


class TestLifecycle:
    """Tests for activate()/deactivate()."""

    def test_deactivate_drops_pending(self):
        """Test that deactivate() cancels queued jobs."""
        sched = JobScheduler()
        sched.activate(RuntimeConfig(background_pool_size=1))
        counter = Counter()
        handle = sched.submit_delayed(OWNER_A, counter, 0.2)

        dropped = sched.deactivate()

        assert dropped == 1
        assert handle.cancelled()
        assert not sched.is_active
        assert not sched.contains_jobs(OWNER_A)
        time.sleep(0.25)
        assert counter.count == 0

    def test_deactivate_interrupts_running(self):
        """Test that deactivate() raises the interrupt flag of running jobs."""
        sched = JobScheduler()
        sched.activate()
        started = threading.Event()
        finished = threading.Event()

        def job():
            started.set()
            while not interrupted():
                time.sleep(0.01)
            time.sleep(0.05)
            finished.set()

        handle = sched.submit(job)
        assert started.wait(2.0)

        sched.deactivate()

        assert handle.interrupted()
        # deactivate() waited for the job to return
        assert finished.is_set()

    def test_deactivate_grace_period_bounded(self, caplog):
        """Test that a job ignoring the interrupt does not block deactivate()."""
        sched = JobScheduler()
        sched.activate()
        started = threading.Event()
        release = threading.Event()

        def stubborn():
            started.set()
            release.wait(5.0)

        sched.submit(stubborn)
        assert started.wait(2.0)

        begin = time.monotonic()
        sched.deactivate(timeout=0.1)
        elapsed = time.monotonic() - begin
        release.set()

        assert elapsed < 1.0
        assert "still running" in caplog.text

    def test_submit_after_deactivate(self):
        """Test that a stopped scheduler rejects jobs."""
        sched = JobScheduler()
        sched.activate()
        sched.deactivate()

        with pytest.raises(RuntimeError):
            sched.submit(lambda: None)

    def test_activate_with_invalid_sizes(self, caplog):
        """Test that inconsistent sizes are corrected and logged."""
        sched = JobScheduler()
        sched.activate(RuntimeConfig(pool_min_size=4, pool_max_size=2, background_pool_size=0))
        try:
            assert sched.submit(lambda: 1).result(timeout=2.0) == 1
            assert sched.submit_delayed(OWNER_A, lambda: 2, 0).result(timeout=2.0) == 2
        finally:
            sched.deactivate()

        assert "below minimum" in caplog.text
        assert "Invalid background pool size" in caplog.text


class TestPools:
    """Tests for the pool building blocks."""

    def test_worker_pool_shrinks_after_keep_alive(self):
        """Test that surplus workers exit when idle."""
        pool = WorkerPool(min_size=1, max_size=4, keep_alive=0.05)
        barrier = threading.Barrier(4, timeout=2.0)
        jobs = [pool.submit(barrier.wait) for _ in range(4)]
        for job in jobs:
            job.result(timeout=3.0)
        assert pool.worker_count >= 2

        assert wait_until(lambda: pool.worker_count <= 1)
        pool.shutdown_now()

    def test_scheduled_pool_orders_by_time(self):
        """Test that jobs run in due-time order on a single worker."""
        pool = ScheduledPool(1)
        order = []
        last = pool.schedule(lambda: order.append("late"), 0.1)
        pool.schedule(lambda: order.append("early"), 0.02)

        last.result(timeout=2.0)
        pool.shutdown_now()

        assert order == ["early", "late"]

    def test_handle_repr(self):
        """Test that handles are named after their function."""

        def poll_sensors():
            pass

        assert "poll_sensors" in repr(JobHandle(poll_sensors, interval=5))

    def test_interrupted_outside_job(self):
        """Test that interrupted() is false outside a pool worker."""
        assert interrupted() is False
