from __future__ import annotations

from typing import Any, Dict, Optional

from flowmail.core.exception import ConfigurationBindingError
from flowmail.core.mail.config import STEP_TYPE, MailConfig, MailInputs
from flowmail.core.mail.executor import execute_mail
from flowmail.core.registry.steps import register_step
from flowmail.core.steps.base import STEP_FAILED, Step, StepResult


@register_step(STEP_TYPE, inputs_model=MailInputs)
class MailStep(Step):
    """Send an email through the configured mail resource.

    Inputs:
      - subject, body: mandatory text (blank values fail the job)
      - to / cc / bcc: comma and/or whitespace separated addresses; at least one
      - from: sender, defaults to Settings.mail_default_from or the transport's from_addr
      - replyTo: optional reply-to address
      - charset: defaults to Settings.mail_default_charset
      - mimeType: body part type, defaults to text/plain

    The transport is the resource named by Settings.mail_resource (kind=mail).
    """

    @classmethod
    def arguments_to_string(cls, inputs: Dict[str, Any]) -> Optional[str]:
        try:
            return MailConfig.from_inputs(inputs or {}).provenance()
        except ConfigurationBindingError:
            return None

    def run(self) -> StepResult:
        logger = self.log
        try:
            config = MailConfig.from_inputs(self.inputs)
        except ConfigurationBindingError as e:
            logger.error(str(e))
            return StepResult(status=STEP_FAILED, output={"sent": False}, reason=str(e))

        settings = self.ctx.settings
        try:
            transport = self.ctx.connectors.mail(settings.mail_resource)
        except KeyError as e:
            logger.warning(f"mail resource unavailable: {e.args[0]}")
            transport = None

        return execute_mail(
            config,
            transport,
            logger=logger,
            default_from=settings.mail_default_from,
            default_charset=settings.mail_default_charset,
        )
