"""
Shared job scheduler.

Two pools are available:
- an immediate pool for fire-and-forget work (min/max workers, idle keep-alive)
- a scheduled pool for delayed and fixed-delay repeating work (fixed workers)

Using shared pools instead of spawning dedicated threads keeps the total
thread count under control on small devices.

Delayed and repeating jobs are recorded per owner so that a module's jobs can
be cancelled in one call when the module is torn down. The scheduler does not
watch owners itself; whoever tears an owner down calls cancel_jobs(owner).

Cancellation is cooperative. A cancelled job that is already running keeps
running until it checks interrupted():

    def poll():
        for sensor in sensors:
            if interrupted():
                return
            sensor.refresh()
"""

import heapq
import itertools
import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, Hashable, List, Optional, Set, Tuple

from home_reactor.core.config import RuntimeConfig

logger = logging.getLogger(__name__)

# Seconds deactivate() waits for running jobs to return
SHUTDOWN_GRACE_PERIOD = 2.0

JobFunction = Callable[[], Any]

_current = threading.local()


def interrupted() -> bool:
    """
    Check whether the job running on the current thread was cancelled.

    Returns:
        True if the current job has been interrupted, False otherwise
        (including when called outside of a pool worker)
    """
    job = getattr(_current, "job", None)
    return job is not None and job.interrupted()


def _join_threads(threads: List[threading.Thread], timeout: float) -> bool:
    """Join threads against one shared deadline, skipping the calling thread."""
    deadline = time.monotonic() + timeout
    me = threading.current_thread()
    for thread in threads:
        if thread is me:
            continue
        thread.join(max(0.0, deadline - time.monotonic()))
    return not any(t.is_alive() for t in threads if t is not me)


class JobHandle:
    """
    Cancellable handle for a job submitted to one of the pools.

    One-shot jobs complete with the function's return value. Repeating jobs
    only complete when cancelled or when a run raises.
    """

    def __init__(
        self,
        fn: JobFunction,
        interval: Optional[float] = None,
        name: Optional[str] = None,
    ) -> None:
        self._fn = fn
        self.interval = interval
        self.name = name or getattr(fn, "__name__", repr(fn))
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._interrupt = threading.Event()
        self._running = False
        self._cancel_requested = False

    def __repr__(self) -> str:
        return f"JobHandle({self.name!r}, interval={self.interval})"

    def cancel(self, interrupt: bool = True) -> bool:
        """
        Cancel the job.

        A queued job will not run. A running job is flagged as interrupted
        (if requested) and will not be rescheduled.

        Args:
            interrupt: Raise the interrupt flag of a job that is running

        Returns:
            False if the job had already completed, True otherwise
        """
        with self._lock:
            if self._future.done():
                return False
            self._cancel_requested = True
            if self._running:
                if interrupt:
                    self._interrupt.set()
                return True
            return self._future.cancel()

    def cancelled(self) -> bool:
        return self._cancel_requested

    def interrupted(self) -> bool:
        return self._interrupt.is_set()

    def done(self) -> bool:
        return self._future.done()

    def running(self) -> bool:
        return self._running

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the job to complete.

        Raises:
            concurrent.futures.CancelledError: If the job was cancelled
            concurrent.futures.TimeoutError: If the timeout expired
        """
        return self._future.result(timeout)

    def _run_once(self) -> bool:
        """
        Run the job function once.

        Returns:
            True if the job should be scheduled again
        """
        with self._lock:
            if self._cancel_requested:
                return False
            self._running = True

        _current.job = self
        try:
            result = self._fn()
        except Exception as e:
            logger.error(f"Error executing job {self.name}: {e}", exc_info=True)
            with self._lock:
                self._running = False
                if self._cancel_requested:
                    self._future.cancel()
                else:
                    self._future.set_exception(e)
            return False
        finally:
            _current.job = None

        with self._lock:
            self._running = False
            if self._cancel_requested:
                self._future.cancel()
                return False
            if self.interval is None:
                self._future.set_result(result)
                return False
            return True


class WorkerPool:
    """
    Pool for immediate execution of jobs.

    Up to min_size workers stay alive while idle. When all workers are busy
    new ones are started up to max_size; those surplus workers exit after
    being idle for keep_alive seconds.
    """

    def __init__(
        self,
        min_size: int,
        max_size: int,
        keep_alive: float,
        name: str = "worker",
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self._min_size = max(0, min(min_size, max_size))
        self._max_size = max_size
        self._keep_alive = keep_alive
        self._name = name

        self._queue: "queue.SimpleQueue[Optional[JobHandle]]" = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._workers: Set[threading.Thread] = set()
        self._active: Set[JobHandle] = set()
        self._idle = 0
        self._pending = 0
        self._counter = itertools.count(1)
        self._shutdown = False

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    def submit(self, fn: JobFunction, name: Optional[str] = None) -> JobHandle:
        """
        Queue a job for execution by the next free worker.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        job = JobHandle(fn, name=name)
        with self._lock:
            if self._shutdown:
                raise RuntimeError("Worker pool has been shut down")
            self._queue.put(job)
            self._pending += 1
            if self._pending > self._idle and len(self._workers) < self._max_size:
                self._start_worker()
        return job

    def shutdown_now(self) -> List[JobHandle]:
        """
        Stop the pool.

        Queued jobs are cancelled, running jobs are interrupted.

        Returns:
            Jobs that were queued and never ran
        """
        with self._lock:
            self._shutdown = True
            pending = []
            while True:
                try:
                    job = self._queue.get_nowait()
                except queue.Empty:
                    break
                if job is not None:
                    pending.append(job)
            self._pending = 0
            running = list(self._active)
            for _ in range(len(self._workers)):
                self._queue.put(None)

        for job in pending:
            job.cancel(interrupt=False)
        for job in running:
            job.cancel(interrupt=True)
        return pending

    def join(self, timeout: float) -> bool:
        """
        Wait for the workers of a stopped pool to exit.

        Args:
            timeout: Total seconds to wait across all workers

        Returns:
            True if every worker exited in time
        """
        with self._lock:
            workers = list(self._workers)
        return _join_threads(workers, timeout)

    def _start_worker(self) -> None:
        thread = threading.Thread(
            target=self._work,
            name=f"{self._name}-{next(self._counter)}",
            daemon=True,
        )
        self._workers.add(thread)
        thread.start()

    def _work(self) -> None:
        me = threading.current_thread()
        while True:
            with self._lock:
                if self._shutdown:
                    self._workers.discard(me)
                    return
                surplus = len(self._workers) > self._min_size
                self._idle += 1

            try:
                job = self._queue.get(timeout=self._keep_alive if surplus else None)
            except queue.Empty:
                with self._lock:
                    self._idle -= 1
                    if len(self._workers) > self._min_size and self._queue.empty():
                        self._workers.discard(me)
                        return
                continue

            with self._lock:
                self._idle -= 1
                if job is None:
                    self._workers.discard(me)
                    return
                self._pending -= 1
                self._active.add(job)

            try:
                job._run_once()
            finally:
                with self._lock:
                    self._active.discard(job)


class ScheduledPool:
    """
    Pool for delayed and repeating jobs, with a fixed number of workers.

    Repeating jobs use fixed-delay semantics: the next run is scheduled
    interval seconds after the previous run completes.
    """

    def __init__(self, size: int, name: str = "scheduled") -> None:
        if size < 1:
            raise ValueError(f"size must be at least 1, got {size}")

        self._queue: List[Tuple[float, int, JobHandle]] = []
        self._cond = threading.Condition()
        self._sequence = itertools.count()
        self._active: Set[JobHandle] = set()
        self._shutdown = False
        self._threads = [
            threading.Thread(target=self._work, name=f"{name}-{i + 1}", daemon=True)
            for i in range(size)
        ]
        for thread in self._threads:
            thread.start()

    def schedule(self, fn: JobFunction, delay: float, name: Optional[str] = None) -> JobHandle:
        """Run a job once after delay seconds."""
        job = JobHandle(fn, name=name)
        self._enqueue(job, time.monotonic() + delay)
        return job

    def schedule_with_fixed_delay(
        self,
        fn: JobFunction,
        initial_delay: float,
        interval: float,
        name: Optional[str] = None,
    ) -> JobHandle:
        """Run a job after initial_delay, then interval seconds after each run."""
        job = JobHandle(fn, interval=interval, name=name)
        self._enqueue(job, time.monotonic() + initial_delay)
        return job

    def shutdown_now(self) -> List[JobHandle]:
        """
        Stop the pool.

        Queued jobs are cancelled, running jobs are interrupted.

        Returns:
            Jobs that were queued and not yet cancelled
        """
        with self._cond:
            self._shutdown = True
            pending = [job for _, _, job in self._queue if not job.cancelled()]
            self._queue.clear()
            running = list(self._active)
            self._cond.notify_all()

        for job in pending:
            job.cancel(interrupt=False)
        for job in running:
            job.cancel(interrupt=True)
        return pending

    def join(self, timeout: float) -> bool:
        """Wait for the workers of a stopped pool to exit. True if all did."""
        return _join_threads(self._threads, timeout)

    def _enqueue(self, job: JobHandle, run_at: float) -> None:
        with self._cond:
            if self._shutdown:
                raise RuntimeError("Scheduled pool has been shut down")
            heapq.heappush(self._queue, (run_at, next(self._sequence), job))
            self._cond.notify()

    def _next_job(self) -> Optional[JobHandle]:
        """Block until a job is due. Returns None on shutdown."""
        with self._cond:
            while True:
                if self._shutdown:
                    return None
                if not self._queue:
                    self._cond.wait()
                    continue

                run_at, _, job = self._queue[0]
                remaining = run_at - time.monotonic()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue

                heapq.heappop(self._queue)
                if job.cancelled():
                    continue
                self._active.add(job)
                return job

    def _work(self) -> None:
        while True:
            job = self._next_job()
            if job is None:
                return

            try:
                again = job._run_once()
            finally:
                with self._cond:
                    self._active.discard(job)

            if again:
                try:
                    self._enqueue(job, time.monotonic() + job.interval)
                except RuntimeError:
                    job.cancel(interrupt=False)


class JobScheduler:
    """
    Shared scheduling service for the kernel and its modules.

    Responsibilities:
    - Run fire-and-forget jobs on the immediate pool
    - Run delayed and repeating jobs on the scheduled pool
    - Track delayed/repeating jobs per owner for bulk cancellation
    """

    def __init__(self) -> None:
        """Initialize an inactive scheduler. Call activate() before submitting."""
        self._executor: Optional[WorkerPool] = None
        self._scheduled: Optional[ScheduledPool] = None
        self._jobs: Dict[Hashable, List[JobHandle]] = {}
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._executor is not None and self._scheduled is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def activate(self, config: Optional[RuntimeConfig] = None) -> None:
        """
        Start both pools.

        Args:
            config: Pool sizing (defaults when omitted)
        """
        if config is None:
            config = RuntimeConfig()

        logger.info("Starting job scheduler")

        max_size = config.pool_max_size
        if max_size < max(config.pool_min_size, 1):
            logger.error(
                f"Thread pool maximum {max_size} is below minimum {config.pool_min_size}, "
                f"using {max(config.pool_min_size, 1)}"
            )
            max_size = max(config.pool_min_size, 1)

        background_size = config.background_pool_size
        if background_size < 1:
            logger.error(f"Invalid background pool size {background_size}, using 1")
            background_size = 1

        self._executor = WorkerPool(
            config.pool_min_size,
            max_size,
            config.pool_keep_alive,
            name="reactor-worker",
        )
        self._scheduled = ScheduledPool(background_size, name="reactor-scheduled")

    def deactivate(self, timeout: float = SHUTDOWN_GRACE_PERIOD) -> int:
        """
        Shut down both pools, interrupting running jobs.

        Queued jobs are dropped at once. Running jobs get up to timeout
        seconds to notice the interrupt and return; workers still busy after
        that are abandoned (they are daemon threads) and a warning is logged.

        Args:
            timeout: Grace period in seconds for running jobs

        Returns:
            Number of queued jobs that were dropped
        """
        logger.info("Shutting down job scheduler")

        pools: List[WorkerPool | ScheduledPool] = []
        dropped = 0
        if self._executor is not None:
            dropped += len(self._executor.shutdown_now())
            pools.append(self._executor)
            self._executor = None
        if self._scheduled is not None:
            dropped += len(self._scheduled.shutdown_now())
            pools.append(self._scheduled)
            self._scheduled = None

        with self._lock:
            self._jobs.clear()

        deadline = time.monotonic() + timeout
        for pool in pools:
            if not pool.join(max(0.0, deadline - time.monotonic())):
                logger.warning(f"Jobs still running {timeout}s after shutdown")
                break

        if dropped:
            logger.debug(f"Dropped {dropped} queued jobs")
        return dropped

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, job: JobFunction) -> JobHandle:
        """
        Run a job as soon as a worker is available.

        Args:
            job: Callable without arguments

        Returns:
            Handle for the submitted job
        """
        return self._require_executor().submit(job)

    def submit_delayed(self, owner: Hashable, job: JobFunction, delay: float) -> JobHandle:
        """
        Run a job once after a delay.

        Args:
            owner: Module on whose behalf the job runs
            job: Callable without arguments
            delay: Delay in seconds

        Returns:
            Handle for the scheduled job
        """
        if delay < 0:
            raise ValueError(f"delay must not be negative, got {delay}")

        pool = self._require_scheduled()
        with self._lock:
            handle = pool.schedule(job, delay)
            self._record(owner, handle)
        return handle

    def submit_repeating(self, owner: Hashable, job: JobFunction, interval: float) -> JobHandle:
        """
        Run a job immediately, then every interval seconds after each run completes.

        Args:
            owner: Module on whose behalf the job runs
            job: Callable without arguments
            interval: Delay in seconds between the end of a run and the next start

        Returns:
            Handle for the repeating job
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        pool = self._require_scheduled()
        with self._lock:
            handle = pool.schedule_with_fixed_delay(job, 0, interval)
            self._record(owner, handle)
        return handle

    # =========================================================================
    # Owner bookkeeping
    # =========================================================================

    def cancel_jobs(self, owner: Hashable) -> None:
        """
        Cancel all delayed and repeating jobs of an owner.

        Safe to call when the owner has no jobs.

        Args:
            owner: Module whose jobs should be cancelled
        """
        with self._lock:
            jobs = self._jobs.pop(owner, None)

        if not jobs:
            return

        for handle in jobs:
            handle.cancel(interrupt=True)
        logger.debug(f"Cancelled {len(jobs)} jobs of {owner!r}")

    def contains_jobs(self, owner: Hashable) -> bool:
        """Check whether jobs are recorded for an owner."""
        return owner in self._jobs

    def _record(self, owner: Hashable, handle: JobHandle) -> None:
        # Caller holds self._lock
        jobs = [h for h in self._jobs.get(owner, []) if not h.done()]
        jobs.append(handle)
        self._jobs[owner] = jobs

    def _require_executor(self) -> WorkerPool:
        if self._executor is None:
            raise RuntimeError("Job scheduler is not active")
        return self._executor

    def _require_scheduled(self) -> ScheduledPool:
        if self._scheduled is None:
            raise RuntimeError("Job scheduler is not active")
        return self._scheduled
