from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Tuple

import yaml
from pydantic import ValidationError

# Ensure built-ins register even when validation is called standalone.
from flowmail.core.runtime import _bootstrap  # noqa: F401
from flowmail.core.plugins import load_all_plugins
from flowmail.core.registry.connectors import REGISTRY
from flowmail.core.registry.steps import get_step_inputs_model, list_steps
from flowmail.core.runtime.settings import Settings, load_settings
from flowmail.core.spec import FlowSpec, MailResourceOptions

log = logging.getLogger("flowmail.core.validation")


@dataclass(frozen=True)
class FlowValidationIssue:
    code: str
    loc: str
    msg: str

    def as_dict(self) -> dict:
        return {"code": self.code, "loc": self.loc, "msg": self.msg}


def _fmt_loc(loc: Any) -> str:
    """Format a pydantic 'loc' tuple/list into a readable YAML-ish path."""
    if not loc:
        return "<root>"
    parts: List[str] = []
    for x in loc:
        if isinstance(x, int):
            if not parts:
                parts.append(f"[{x}]")
            else:
                parts[-1] = f"{parts[-1]}[{x}]"
        else:
            parts.append(str(x))
    return ".".join(parts)


def _collect_pydantic_issues(err: ValidationError, *, prefix: str = "", code: str = "schema") -> List[FlowValidationIssue]:
    out: List[FlowValidationIssue] = []
    for e in err.errors():
        loc = _fmt_loc(e.get("loc"))
        if prefix:
            loc = prefix if loc == "<root>" else f"{prefix}.{loc}"
        msg = e.get("msg") or "Invalid value"
        etype = e.get("type") or "error"
        out.append(FlowValidationIssue(code=f"{code}:{etype}", loc=loc, msg=msg))
    return out


Issues = List[FlowValidationIssue]


def _check_unique_ids(spec: FlowSpec) -> Issues:
    issues: Issues = []
    job_ids = [j.id for j in spec.jobs]
    for jid in sorted({jid for jid in job_ids if job_ids.count(jid) > 1}):
        issues.append(FlowValidationIssue("semantic:duplicate_job_id", "jobs", f"Duplicate job id: {jid}"))
    for j_i, job in enumerate(spec.jobs):
        step_ids = [s.id for s in job.steps]
        for sid in sorted({sid for sid in step_ids if step_ids.count(sid) > 1}):
            issues.append(FlowValidationIssue(
                "semantic:duplicate_step_id", f"jobs[{j_i}].steps", f"Duplicate step id in job '{job.id}': {sid}",
            ))
    return issues


def _check_depends_on(spec: FlowSpec) -> Issues:
    # jobs run in file order, so a dependency must appear earlier
    issues: Issues = []
    position = {job.id: i for i, job in enumerate(spec.jobs)}
    for j_i, job in enumerate(spec.jobs):
        loc = f"jobs[{j_i}].depends_on"
        for dep in job.depends_on:
            if dep not in position:
                issues.append(FlowValidationIssue(
                    "semantic:depends_on_unknown_job", loc, f"Job '{job.id}' depends_on unknown job: {dep}",
                ))
            elif position[dep] >= j_i:
                issues.append(FlowValidationIssue(
                    "semantic:depends_on_order", loc,
                    f"Job '{job.id}' depends_on '{dep}' which does not appear before it; reorder jobs",
                ))
    return issues


def _check_resources(spec: FlowSpec) -> Issues:
    """Every resource names a registered connector; built-in mail drivers get typed config and options."""
    issues: Issues = []
    for name, r in spec.resources.items():
        loc = f"resources.{name}"
        if r.driver not in REGISTRY.drivers(r.kind):
            issues.append(FlowValidationIssue(
                "semantic:unknown_connector", f"{loc}.driver",
                f"Unknown connector {r.kind}:{r.driver}. Loaded: {REGISTRY.list()}",
            ))
            continue
        config_model = r.config_model()
        if config_model is None:
            continue
        for model, part, value in ((config_model, "config", r.config), (MailResourceOptions, "options", r.options)):
            try:
                model.model_validate(value)
            except ValidationError as e:
                issues.extend(_collect_pydantic_issues(e, prefix=f"{loc}.{part}", code="resource"))
    return issues


def _check_steps(spec: FlowSpec) -> Issues:
    """Step types are registered (plugins included) and inputs bind to the step's inputs model."""
    issues: Issues = []
    known = set(list_steps())
    for j_i, job in enumerate(spec.jobs):
        for s_i, step in enumerate(job.steps):
            loc = f"jobs[{j_i}].steps[{s_i}]"
            if step.type not in known:
                issues.append(FlowValidationIssue(
                    "semantic:unknown_step_type", f"{loc}.type", f"Unknown step type: {step.type}. Loaded: {sorted(known)}",
                ))
                continue
            model = get_step_inputs_model(step.type)
            if model is None:
                continue
            try:
                model.model_validate(step.inputs)
            except ValidationError as e:
                issues.extend(_collect_pydantic_issues(e, prefix=f"{loc}.inputs", code="binding"))
    return issues


def _check_mail_resource(spec: FlowSpec, settings: Settings) -> Tuple[Issues, Issues]:
    """(errors, warnings) for the resource the mail steps send through."""
    if not any(spec.steps_of_type("mail")):
        return [], []
    name = settings.mail_resource
    r = spec.resources.get(name)
    if r is None:
        if settings.default_mail_resource() is not None:
            return [], []
        return [], [FlowValidationIssue(
            "semantic:mail_resource_missing", "resources",
            f"mail steps need resource '{name}' (kind=mail) or FLOWMAIL_SMTP_HOST",
        )]
    if r.kind != "mail":
        return [FlowValidationIssue(
            "semantic:mail_resource_kind", f"resources.{name}.kind", f"Resource '{name}' must be kind=mail, got {r.kind!r}",
        )], []
    return [], []


def _report(errors: Issues, warnings: Issues, flow_path: str | None) -> dict:
    return {
        "ok": not errors,
        "errors": [x.as_dict() for x in errors],
        "warnings": [x.as_dict() for x in warnings],
        "flow_yaml": flow_path,
    }


def validate_flow_dict(raw: Any, *, settings: Settings | None = None, flow_path: str | None = None) -> dict:
    """Validate a parsed flow: schema, then ids, dependencies, resources, step inputs and the mail resource.

    Returns a report dict: {ok: bool, errors: [{code, loc, msg}...], warnings: [...], flow_yaml}
    """
    settings = settings or load_settings()

    # plugins may add step types and connectors
    load_all_plugins(settings=settings)

    try:
        spec = FlowSpec.model_validate(raw)
    except ValidationError as e:
        return _report(_collect_pydantic_issues(e), [], flow_path)

    errors = _check_unique_ids(spec) + _check_depends_on(spec) + _check_resources(spec) + _check_steps(spec)
    mail_errors, warnings = _check_mail_resource(spec, settings)
    errors += mail_errors
    log.debug(f"validated flow={spec.flow.id} errors={len(errors)} warnings={len(warnings)}")
    return _report(errors, warnings, flow_path)


def validate_flow_yaml(flow_yaml: str, *, settings: Settings | None = None) -> dict:
    """Validate a flow YAML file; YAML syntax errors are reported, not raised."""
    path = Path(flow_yaml)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        return _report([FlowValidationIssue("yaml:parse_error", "<root>", str(e))], [], str(path))
    return validate_flow_dict(raw, settings=settings, flow_path=str(path))
