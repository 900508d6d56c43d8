from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class StateSpec(BaseModel):
    # Unset: <Settings.state_root>/<flow id>.sqlite
    path: Optional[str] = None


# ---------------------------------------------------------------------------
# Mail resources
# ---------------------------------------------------------------------------

CachePolicy = Literal["run", "process", "none"]


class SmtpMailConfig(BaseModel):
    """`config` of a kind=mail, driver=smtp resource."""

    model_config = ConfigDict(extra="forbid")

    host: str
    port: PositiveInt = 25
    username: Optional[str] = None
    password: Optional[str] = None
    # None: on for port 587
    starttls: Optional[bool] = None
    from_addr: Optional[str] = None


class MemoryMailConfig(BaseModel):
    """`config` of a kind=mail, driver=memory resource."""

    model_config = ConfigDict(extra="forbid")

    from_addr: Optional[str] = None
    reject: List[str] = Field(default_factory=list)
    max_messages: Optional[PositiveInt] = None


class MailResourceOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout: Optional[PositiveFloat] = None
    cache: Optional[CachePolicy] = None


# driver -> config model for the built-in mail transports; plugin drivers are not checked
MAIL_DRIVER_CONFIGS: Dict[str, Type[BaseModel]] = {
    "smtp": SmtpMailConfig,
    "memory": MemoryMailConfig,
}


class ResourceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str
    driver: str
    config: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_mail(self) -> bool:
        return self.kind == "mail"

    def config_model(self) -> Optional[Type[BaseModel]]:
        return MAIL_DRIVER_CONFIGS.get(self.driver) if self.is_mail else None

    def as_resource(self) -> Dict[str, Any]:
        """Plain dict handed to the connector manager."""
        return {"kind": self.kind, "driver": self.driver, "config": dict(self.config), "options": dict(self.options)}


# ---------------------------------------------------------------------------
# Flow / Jobs / Steps
# ---------------------------------------------------------------------------


class StepSpec(BaseModel):
    id: str
    type: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


class JobSpec(BaseModel):
    id: str
    description: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    steps: List[StepSpec]


class FlowMetaSpec(BaseModel):
    id: str
    description: Optional[str] = None
    state: StateSpec = Field(default_factory=StateSpec)


class FlowSpec(BaseModel):
    version: int = 1
    flow: FlowMetaSpec
    resources: Dict[str, ResourceSpec] = Field(default_factory=dict)
    jobs: List[JobSpec]

    def state_path(self, state_root: str) -> str:
        return self.flow.state.path or str(Path(state_root) / f"{self.flow.id}.sqlite")

    def steps_of_type(self, step_type: str) -> Iterator[Tuple[int, int, StepSpec]]:
        """(job index, step index, step) for every step of `step_type`, in flow order."""
        for j_i, job in enumerate(self.jobs):
            for s_i, step in enumerate(job.steps):
                if step.type == step_type:
                    yield j_i, s_i, step


__all__ = [
    "StateSpec",
    "SmtpMailConfig",
    "MemoryMailConfig",
    "MailResourceOptions",
    "MAIL_DRIVER_CONFIGS",
    "ResourceSpec",
    "StepSpec",
    "JobSpec",
    "FlowMetaSpec",
    "FlowSpec",
]
