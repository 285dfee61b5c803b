from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from fivewhy.core.logging import log_context
from fivewhy.core.observability.sink import ErrorSink


@dataclass
class JobOutcome:
    job_id: str
    ok: bool
    value: Any = None
    error: str | None = None


class MaintenanceScheduler:
    """Runs background maintenance (session compression) as one-off jobs.

    Jobs are never detached: failures reach the error sink through a job-error
    listener and every outcome is recorded so callers can ``wait`` on it. In
    inline mode jobs run synchronously inside ``submit``.
    """

    def __init__(self, sink: ErrorSink | None = None, inline: bool | None = None, max_outcomes: int = 500) -> None:
        self.sink = sink or ErrorSink()
        if inline is None:
            inline = os.getenv("FIVEWHY_TEST_MODE", "").casefold() in {"1", "true", "yes", "on"}
        self.inline = inline
        self.timezone = ZoneInfo("UTC")
        self.scheduler = BackgroundScheduler(jobstores={"default": MemoryJobStore()}, timezone=self.timezone)
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self.logger = logging.getLogger("fivewhy.scheduler")
        self.max_outcomes = max(1, max_outcomes)
        self._outcomes: OrderedDict[str, JobOutcome] = OrderedDict()
        self._done: dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        if self.inline or self._started:
            return
        self.scheduler.start()
        self._started = True

    def shutdown(self, wait: bool = False) -> None:
        if self._started:
            self.scheduler.shutdown(wait=wait)
            self._started = False

    def submit(self, job_id: str, func: Callable[..., Any], kwargs: dict[str, Any] | None = None) -> str:
        kwargs = dict(kwargs or {})
        with self._lock:
            self._outcomes.pop(job_id, None)
            self._done[job_id] = threading.Event()

        if self.inline:
            with log_context(job_id=job_id):
                try:
                    value = func(**kwargs)
                except Exception as exc:
                    self._record(JobOutcome(job_id=job_id, ok=False, error=str(exc)))
                    self.sink.report("scheduler.job", exc, job_id=job_id)
                else:
                    self._record(JobOutcome(job_id=job_id, ok=True, value=value))
            return job_id

        self.start()
        self.scheduler.add_job(
            func,
            trigger="date",
            id=job_id,
            run_date=datetime.now(self.timezone),
            kwargs=kwargs,
            replace_existing=True,
            misfire_grace_time=None,
        )
        self.logger.info("job_submitted", extra={"extra_fields": {"job_id": job_id}})
        return job_id

    def wait(self, job_id: str, timeout_s: float | None = None) -> JobOutcome | None:
        """Block until the job finishes, then hand over and forget its outcome."""
        with self._lock:
            done = self._done.get(job_id)
        if done is None or not done.wait(timeout_s):
            return None
        with self._lock:
            self._done.pop(job_id, None)
            return self._outcomes.pop(job_id, None)

    def outcome(self, job_id: str) -> JobOutcome | None:
        with self._lock:
            return self._outcomes.get(job_id)

    def _record(self, outcome: JobOutcome) -> None:
        with self._lock:
            self._outcomes[outcome.job_id] = outcome
            self._outcomes.move_to_end(outcome.job_id)
            done = self._done.setdefault(outcome.job_id, threading.Event())
            # Only finished jobs are evicted; pending ones keep their wait handle.
            while len(self._outcomes) > self.max_outcomes:
                evicted, _ = self._outcomes.popitem(last=False)
                self._done.pop(evicted, None)
        done.set()

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_EXECUTED:
            self._record(JobOutcome(job_id=event.job_id, ok=True, value=event.retval))
            return
        if event.code == EVENT_JOB_MISSED:
            self._record(JobOutcome(job_id=event.job_id, ok=False, error="missed"))
            self.logger.warning("job_missed", extra={"extra_fields": {"job_id": event.job_id}})
            return
        exc = event.exception or RuntimeError("job failed")
        self._record(JobOutcome(job_id=event.job_id, ok=False, error=str(exc)))
        self.sink.report("scheduler.job", exc, job_id=event.job_id)
