from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

# Ensure built-in connectors/steps are registered even when calling
# flowmail.core.runner.run_flow directly.
from flowmail.core.runtime import _bootstrap  # noqa: F401

from flowmail.core.connectors.manager import Connectors
from flowmail.core.context import RunContext, new_run_id
from flowmail.core.exception import SpecError
from flowmail.core.observability import RunObserver, RunSummary
from flowmail.core.plugins import load_all_plugins
from flowmail.core.registry.steps import get_step
from flowmail.core.runtime.settings import Settings, load_settings
from flowmail.core.spec import FlowSpec
from flowmail.core.state import StateStore
from flowmail.core.steps.base import STEP_FAILED, STEP_SKIPPED, STEP_SUCCESS, StepResult
from flowmail.core.validation import validate_flow_yaml

JOB_SUCCESS = "SUCCESS"
JOB_FAILED = "FAILED"
JOB_BLOCKED = "BLOCKED"

log = logging.getLogger("flowmail.core.runner")


def _ensure_logging(settings: Settings) -> None:
    fmt = '%(asctime)s - (%(threadName)-10s) - %(name)s - %(levelname)s - %(message)s'
    if (settings.log_format or "text").lower() == "json":
        # JSON payload already includes timestamp; keep formatter minimal.
        fmt = "%(message)s"
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=fmt,
    )


def _build_resources(spec: FlowSpec, settings: Settings) -> Dict[str, dict]:
    resources: Dict[str, dict] = {name: r.as_resource() for name, r in spec.resources.items()}
    if settings.mail_resource not in resources:
        fallback = settings.default_mail_resource()
        if fallback is not None:
            resources[settings.mail_resource] = fallback
    return resources


def _display_for(step_cls, inputs: Dict[str, Any]) -> Optional[str]:
    try:
        return step_cls.arguments_to_string(inputs)
    except Exception:
        log.warning("arguments_to_string failed; recording invocation without display", exc_info=True)
        return None


def run_flow(
    flow_yaml: str,
    *,
    settings: Settings | None = None,
    run_id: str | None = None,
    flow_job: str | None = None,
) -> RunSummary:
    """Run every job of a flow once and return the run summary.

    A step that reports FAILED (or raises) fails its job; later jobs still
    run unless they depend on the failed one. Only invalid flow specs raise.
    """
    env_snapshot: Dict[str, str] = {k: str(v) for k, v in os.environ.items()}
    settings = settings or load_settings(env=env_snapshot)
    _ensure_logging(settings)

    # Guardrail: same strict validation pipeline for all entrypoints.
    report = validate_flow_yaml(flow_yaml, settings=settings)
    if not report.get("ok", False):
        errs = report.get("errors") or []
        first = errs[0] if errs else {"msg": "Validation failed"}
        raise SpecError(f"{first.get('loc', '<root>')}: {first.get('msg') or 'Validation failed'}")
    for w in report.get("warnings") or []:
        log.warning(f"{w.get('loc')}: {w.get('code')} - {w.get('msg')}")

    with open(flow_yaml, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    try:
        spec = FlowSpec.model_validate(raw)
    except ValidationError as e:
        raise SpecError(str(e)) from e

    run_id = run_id or new_run_id()
    flow_id = spec.flow.id

    # Load Plugins (Connectors, Steps)
    load_all_plugins(settings=settings)

    ctx = RunContext(
        settings=settings,
        flow_id=flow_id,
        run_id=run_id,
        state=StateStore(spec.state_path(settings.state_root)),
        resources={},
        env=env_snapshot,
    )
    ctx.resources = _build_resources(spec, settings)
    ctx.connectors = Connectors(ctx=ctx, resources=ctx.resources, settings=settings)

    obs = RunObserver(settings=settings, logger=ctx.log, flow_id=flow_id, run_id=run_id)
    obs.run_start(yaml_path=flow_yaml)

    statuses: Dict[str, str] = {}
    try:
        for job in spec.jobs:
            if flow_job and job.id != flow_job:
                continue

            if job.depends_on and not all(statuses.get(dep) == JOB_SUCCESS for dep in job.depends_on):
                ctx.log.warning(f"Job blocked job_id={job.id} depends_on={job.depends_on}")
                statuses[job.id] = JOB_BLOCKED
                ctx.state.set_job_status(job.id, run_id, JOB_BLOCKED)
                obs.job_not_run(job_id=job.id, status=JOB_BLOCKED, reason=f"depends_on={job.depends_on}")
                continue

            ctx.state.set_job_status(job.id, run_id, "RUNNING")
            job_log = ctx.job_logger(job.id)
            obs.job_start(job_id=job.id)

            job_status = JOB_SUCCESS
            job_reason: Optional[str] = None
            for step in job.steps:
                StepCls = get_step(step.type)
                ctx.state.record_step_invocation(
                    job.id, run_id, step.id,
                    step_type=step.type,
                    arguments=step.inputs,
                    display=_display_for(StepCls, step.inputs),
                )
                obs.step_start(job_id=job.id, step_id=step.id, step_type=step.type)

                try:
                    raw_out = StepCls(step.id, dict(step.inputs), ctx, job.id).run()
                except Exception as e:
                    job_log.exception(f"Step raised step_id={step.id}: {e}")
                    raw_out = StepResult(status=STEP_FAILED, reason=str(e))

                if isinstance(raw_out, StepResult):
                    step_status, reason, output = raw_out.status, raw_out.reason, raw_out.output
                else:
                    step_status, reason, output = STEP_SUCCESS, None, raw_out

                ctx.state.set_step_status(job.id, run_id, step.id, step_status)
                obs.step_end(job_id=job.id, step_id=step.id, step_type=step.type, status=step_status,
                             reason=reason, output=output)

                if step_status == STEP_FAILED:
                    job_status = JOB_FAILED
                    job_reason = reason
                    break
                if step_status == STEP_SKIPPED:
                    job_log.info(f"Step skipped step_id={step.id} reason={reason}")

            ctx.state.set_job_status(job.id, run_id, job_status)
            statuses[job.id] = job_status
            if job_status == JOB_FAILED:
                job_log.error(f"Job failed: {job_reason}")
            else:
                job_log.info("Job success")
            obs.job_end(job_id=job.id, status=job_status, reason=job_reason)

        counts: Dict[str, int] = {}
        for st in statuses.values():
            counts[st] = counts.get(st, 0) + 1
        return obs.run_end(status_counts=counts)
    finally:
        ctx.connectors.close_all()
