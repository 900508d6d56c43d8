from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Step statuses used by the runner/state.
STEP_SUCCESS = "SUCCESS"
STEP_SKIPPED = "SKIPPED"
STEP_FAILED = "FAILED"


@dataclass
class StepResult:
    """Structured step outcome.

    If a step returns a plain dict from `run()`, the runner treats it as
    SUCCESS with that dict as its output. A FAILED result marks the enclosing
    job as failed without raising into the runner.
    """

    status: str = STEP_SUCCESS
    output: Dict[str, Any] | None = None
    reason: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == STEP_FAILED

    def as_output(self) -> Dict[str, Any]:
        out = dict(self.output or {})
        if self.reason:
            out.setdefault("reason", self.reason)
        return out


class Step(abc.ABC):
    """One step of a job. `run()` returns a StepResult or a plain output dict.

    Inputs arrive as written in the flow; steps registered with an
    `inputs_model` have already been checked against it by validation.
    """

    def __init__(self, step_id: str, inputs: Dict[str, Any], ctx, job_id: str):
        self.id = step_id
        self.inputs = inputs
        self.ctx = ctx
        self.job_id = job_id

    @property
    def log(self) -> logging.Logger:
        return self.ctx.job_logger(self.job_id)

    @classmethod
    def arguments_to_string(cls, inputs: Dict[str, Any]) -> Optional[str]:
        """Short display string for a recorded invocation (None = nothing to show)."""
        return None

    @abc.abstractmethod
    def run(self) -> Dict[str, Any] | StepResult:
        raise NotImplementedError
