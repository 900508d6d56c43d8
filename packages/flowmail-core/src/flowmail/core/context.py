from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from flowmail.core.runtime.settings import Settings
from flowmail.core.state import StateStore


@dataclass
class RunContext:
    """What a step sees of its run: settings, state, resources and their connectors."""

    settings: Settings
    flow_id: str
    run_id: str
    state: Optional[StateStore]
    resources: Dict[str, dict]
    env: Dict[str, str] = field(default_factory=dict)
    connectors: Any = None

    @property
    def log(self) -> logging.Logger:
        return logging.getLogger(f"flowmail.flow.{self.flow_id}")

    def job_logger(self, job_id: str) -> logging.Logger:
        return self.log.getChild(f"job.{job_id}")


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]
