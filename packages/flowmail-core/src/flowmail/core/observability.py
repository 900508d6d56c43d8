"""Run events and the end-of-run summary.

`log_event` writes one event per line, as `event key=value ...` text or as a
JSON object (Settings.log_format). `RunObserver` times the run, its jobs and
steps, and builds the RunSummary, which also tallies the mail steps.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from flowmail.core.runtime.settings import Settings
from flowmail.core.steps.base import STEP_FAILED, STEP_SUCCESS

MAIL_STEP_TYPE = "mail"


def log_event(logger: logging.Logger, *, settings: Settings, level: int, event: str, **fields: Any) -> None:
    if (settings.log_format or "text").lower() == "json":
        record: Dict[str, Any] = {"ts_ms": int(time.time() * 1000), "event": event}
        record.update(fields)
        logger.log(level, json.dumps(record, ensure_ascii=False, default=str))
    else:
        logger.log(level, " ".join([event, *(f"{k}={v}" for k, v in fields.items())]))


@dataclass
class StepSummary:
    step_id: str
    step_type: str
    status: str
    duration_ms: int = 0
    reason: Optional[str] = None
    # addresses a sent message went to (mail steps only)
    recipients: int = 0


@dataclass
class JobSummary:
    job_id: str
    status: str
    duration_ms: int = 0
    reason: Optional[str] = None
    steps: List[StepSummary] = field(default_factory=list)


@dataclass
class MailTally:
    sent: int = 0
    failed: int = 0
    recipients: int = 0

    def count(self, step: StepSummary) -> None:
        if step.status == STEP_SUCCESS:
            self.sent += 1
            self.recipients += step.recipients
        elif step.status == STEP_FAILED:
            self.failed += 1


@dataclass
class RunSummary:
    flow_id: str
    run_id: str
    status_counts: Dict[str, int]
    duration_ms: int
    jobs: List[JobSummary] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(j.status == "FAILED" for j in self.jobs)

    @property
    def mail(self) -> MailTally:
        tally = MailTally()
        for job in self.jobs:
            for step in job.steps:
                if step.step_type == MAIL_STEP_TYPE:
                    tally.count(step)
        return tally

    def job(self, job_id: str) -> Optional[JobSummary]:
        return next((j for j in self.jobs if j.job_id == job_id), None)

    def as_dict(self) -> dict:
        out = asdict(self)
        out["mail"] = asdict(self.mail)
        return out


def _recipient_count(output: Any) -> int:
    if not isinstance(output, dict):
        return 0
    return len(output.get("recipients") or ())


class RunObserver:
    """Times a run, its jobs and steps; logs their events and builds the RunSummary."""

    def __init__(self, *, settings: Settings, logger: logging.Logger, flow_id: str, run_id: str):
        self.settings = settings
        self.logger = logger
        self.flow_id = flow_id
        self.run_id = run_id
        self._started: Dict[Tuple[str, ...], float] = {}
        self._jobs: Dict[str, JobSummary] = {}

    def _start(self, *key: str) -> None:
        self._started[key] = time.perf_counter()

    def _elapsed_ms(self, *key: str) -> int:
        t0 = self._started.pop(key, None)
        return 0 if t0 is None else int((time.perf_counter() - t0) * 1000)

    def _event(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        log_event(self.logger, settings=self.settings, level=level, event=event,
                  flow_id=self.flow_id, run_id=self.run_id, **fields)

    def run_start(self, *, yaml_path: str) -> None:
        self._start("run")
        self._event("run_start", yaml=yaml_path)

    def job_start(self, *, job_id: str) -> None:
        self._start("job", job_id)
        self._jobs[job_id] = JobSummary(job_id=job_id, status="RUNNING")
        self._event("job_start", job_id=job_id)

    def job_not_run(self, *, job_id: str, status: str, reason: str) -> None:
        self._jobs[job_id] = JobSummary(job_id=job_id, status=status, reason=reason)
        self._event("job_end", level=logging.WARNING, job_id=job_id, status=status, duration_ms=0, reason=reason)

    def step_start(self, *, job_id: str, step_id: str, step_type: str) -> None:
        self._start("step", job_id, step_id)
        self._event("step_start", job_id=job_id, step_id=step_id, step_type=step_type)

    def step_end(
        self,
        *,
        job_id: str,
        step_id: str,
        step_type: str,
        status: str,
        reason: Optional[str] = None,
        output: Any = None,
    ) -> None:
        step = StepSummary(
            step_id=step_id,
            step_type=step_type,
            status=status,
            duration_ms=self._elapsed_ms("step", job_id, step_id),
            reason=reason,
            recipients=_recipient_count(output) if step_type == MAIL_STEP_TYPE else 0,
        )
        if job_id in self._jobs:
            self._jobs[job_id].steps.append(step)
        fields: Dict[str, Any] = {"job_id": job_id, "step_id": step_id, "step_type": step_type,
                                  "status": status, "duration_ms": step.duration_ms}
        if step_type == MAIL_STEP_TYPE and status == STEP_SUCCESS:
            fields["recipients"] = step.recipients
        self._event("step_end", **fields)

    def job_end(self, *, job_id: str, status: str, reason: Optional[str] = None) -> None:
        job = self._jobs.setdefault(job_id, JobSummary(job_id=job_id, status=status))
        job.status = status
        job.reason = reason
        job.duration_ms = self._elapsed_ms("job", job_id)
        level = logging.ERROR if status == "FAILED" else logging.INFO
        self._event("job_end", level=level, job_id=job_id, status=status, duration_ms=job.duration_ms, reason=reason)

    def run_end(self, *, status_counts: Dict[str, int]) -> RunSummary:
        summary = RunSummary(
            flow_id=self.flow_id,
            run_id=self.run_id,
            status_counts=dict(status_counts),
            duration_ms=self._elapsed_ms("run"),
            jobs=list(self._jobs.values()),
        )
        log_event(self.logger, settings=self.settings, level=logging.INFO, event="run_summary", **summary.as_dict())
        return summary
