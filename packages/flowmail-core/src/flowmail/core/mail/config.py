from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.config import ConfigDict

from flowmail.core.exception import ConfigurationBindingError

STEP_TYPE = "mail"

# python attribute -> input key (the name used in flow YAML / step arguments)
INPUT_KEYS: Dict[str, str] = {
    "subject": "subject",
    "body": "body",
    "from_": "from",
    "to": "to",
    "cc": "cc",
    "bcc": "bcc",
    "reply_to": "replyTo",
    "charset": "charset",
    "mime_type": "mimeType",
}


@dataclass
class MailConfig:
    """Declared state of one mail step invocation.

    Only subject and body are constructor arguments; the remaining fields are
    plain attributes set after construction. Nothing here is validated or
    defaulted: blank fields are rejected by validation.validate_config() and
    charset/mime type/sender defaults are applied when the message is built.
    """

    subject: str
    body: str
    from_: Optional[str] = None
    to: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    charset: Optional[str] = None
    mime_type: Optional[str] = None

    def to_inputs(self) -> Dict[str, str]:
        """Step arguments for this config, keyed by input name. Unset fields are omitted."""
        out: Dict[str, str] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[INPUT_KEYS[f.name]] = value
        return out

    @classmethod
    def from_inputs(cls, inputs: Mapping[str, Any]) -> "MailConfig":
        """Bind step arguments to a MailConfig.

        Missing subject/body bind as blank strings so that the executor reports
        them with the regular validation message. Unknown keys and non-text
        values raise ConfigurationBindingError.
        """
        if not isinstance(inputs, Mapping):
            raise ConfigurationBindingError(
                f"{STEP_TYPE} inputs must be a mapping, got {type(inputs).__name__}", step_type=STEP_TYPE
            )
        try:
            model = MailInputs.model_validate(dict(inputs))
        except ValidationError as e:
            raise ConfigurationBindingError(
                f"Invalid {STEP_TYPE} inputs: {_summarize(e)}", step_type=STEP_TYPE, errors=e.errors()
            ) from e
        return model.to_config()

    def as_step_spec(self) -> Dict[str, Any]:
        """Structured representation used to persist and restore the step."""
        return {"type": STEP_TYPE, "inputs": self.to_inputs()}

    @classmethod
    def from_step_spec(cls, data: Mapping[str, Any]) -> "MailConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationBindingError("step spec must be a mapping", step_type=STEP_TYPE)
        unknown = sorted(set(data.keys()) - {"id", "type", "inputs"})
        if unknown:
            raise ConfigurationBindingError(f"Unknown step spec keys: {unknown}", step_type=STEP_TYPE)
        step_type = data.get("type", STEP_TYPE)
        if step_type != STEP_TYPE:
            raise ConfigurationBindingError(
                f"Expected step type {STEP_TYPE!r}, got {step_type!r}", step_type=STEP_TYPE
            )
        return cls.from_inputs(data.get("inputs") or {})

    def provenance(self) -> str:
        """Display string recorded with the step invocation (the subject)."""
        return self.subject


class MailInputs(BaseModel):
    """Input schema of the `mail` step (aliases are the flow YAML keys)."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, strict=True)

    subject: str = ""
    body: str = ""
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    charset: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")

    @field_validator("subject", "body", mode="before")
    @classmethod
    def _none_is_blank(cls, v):
        return "" if v is None else v

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def _join_address_list(cls, v):
        # YAML lists of addresses are accepted and stored as one comma-separated string.
        if isinstance(v, (list, tuple)) and all(isinstance(x, str) for x in v):
            return ", ".join(v)
        return v

    def to_config(self) -> MailConfig:
        cfg = MailConfig(self.subject, self.body)
        for name in INPUT_KEYS:
            if name in ("subject", "body"):
                continue
            setattr(cfg, name, getattr(self, name))
        return cfg


def _summarize(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)
