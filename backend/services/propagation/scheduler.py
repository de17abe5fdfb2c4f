"""
Delayed job scheduling for propagation runs.

Jobs are grouped under a key (the signal id) so a whole run can be cancelled
at once. ThreadingScheduler is the in-process default; ManualScheduler runs
jobs against a virtual clock and only advances when told to.
"""

import heapq
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from django.db import close_old_connections

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Job:
    key: str
    delay: float
    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    cancelled: bool = False
    timer: Optional[threading.Timer] = field(default=None, repr=False)

    def run(self):
        if self.cancelled:
            return
        try:
            self.func(*self.args)
        except Exception:
            logger.exception("Scheduled job for %s failed", self.key)


class DelayedScheduler:
    """Interface: run func(*args) after `delay` seconds, grouped by key."""

    def schedule(self, key: str, delay: float, func: Callable[..., Any], *args) -> Job:
        raise NotImplementedError

    def cancel(self, key: str) -> int:
        """Cancel every pending job under key. Returns how many were cancelled."""
        raise NotImplementedError

    def pending(self, key: str) -> int:
        """Number of jobs under key that have not run yet."""
        raise NotImplementedError


class ThreadingScheduler(DelayedScheduler):
    """One daemon threading.Timer per job; DB connections are closed after each job."""

    def __init__(self):
        self._jobs: Dict[str, List[Job]] = {}
        self._lock = threading.Lock()

    def schedule(self, key, delay, func, *args) -> Job:
        job = Job(key=key, delay=delay, func=func, args=args)
        job.timer = threading.Timer(delay, self._fire, args=(job,))
        job.timer.daemon = True
        with self._lock:
            self._jobs.setdefault(key, []).append(job)
        job.timer.start()
        return job

    def _fire(self, job: Job):
        with self._lock:
            jobs = self._jobs.get(job.key, [])
            if job in jobs:
                jobs.remove(job)
            if not jobs:
                self._jobs.pop(job.key, None)
        try:
            job.run()
        finally:
            close_old_connections()

    def cancel(self, key) -> int:
        with self._lock:
            jobs = self._jobs.pop(key, [])
        for job in jobs:
            job.cancelled = True
            if job.timer is not None:
                job.timer.cancel()
        if jobs:
            logger.info("Cancelled %d pending job(s) for %s", len(jobs), key)
        return len(jobs)

    def pending(self, key) -> int:
        with self._lock:
            return len(self._jobs.get(key, []))


class ManualScheduler(DelayedScheduler):
    """
    Virtual-clock scheduler. Nothing runs until advance() moves the clock past
    a job's due time; jobs then run in due order on the calling thread.
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, Job]] = []
        self._seq = itertools.count()

    def schedule(self, key, delay, func, *args) -> Job:
        job = Job(key=key, delay=delay, func=func, args=args)
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), job))
        return job

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every job that falls due. Returns jobs run."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, job = heapq.heappop(self._queue)
            self.now = due
            if not job.cancelled:
                job.run()
                ran += 1
        self.now = target
        return ran

    def cancel(self, key) -> int:
        cancelled = 0
        for _, _, job in self._queue:
            if job.key == key and not job.cancelled:
                job.cancelled = True
                cancelled += 1
        return cancelled

    def pending(self, key) -> int:
        return sum(1 for _, _, job in self._queue if job.key == key and not job.cancelled)
