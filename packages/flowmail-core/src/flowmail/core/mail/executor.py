from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flowmail.core.exception import ConnectorError, MailValidationError
from flowmail.core.mail.config import MailConfig
from flowmail.core.mail.message import build_message, message_recipients, resolve_charset
from flowmail.core.mail.validation import validate_config
from flowmail.core.steps.base import STEP_FAILED, STEP_SUCCESS, StepResult

log = logging.getLogger("flowmail.core.mail.executor")

# Executor phases, reported in the result output.
PHASE_VALIDATING = "validating"
PHASE_SENDING = "sending"
PHASE_DONE = "done"


def _failed(logger: logging.Logger, reason: str, *, phase: str, exc_info: bool = False) -> StepResult:
    logger.error(reason, exc_info=exc_info)
    return StepResult(status=STEP_FAILED, output={"sent": False, "phase": phase}, reason=reason)


def execute_mail(
    config: MailConfig,
    transport: Any,
    *,
    logger: Optional[logging.Logger] = None,
    default_from: Optional[str] = None,
    default_charset: Optional[str] = None,
) -> StepResult:
    """Validate `config`, build the message and hand it to `transport` once.

    Never raises for validation, build or delivery problems: the reason is
    written to `logger` and returned as a FAILED StepResult so the host can
    mark the enclosing job as failed. There is no retry.
    """
    logger = logger or log

    reason = validate_config(config)
    if reason is not None:
        return _failed(logger, reason, phase=PHASE_VALIDATING)
    if transport is None:
        return _failed(logger, "Email not sent. No mail transport configured.", phase=PHASE_SENDING)

    if not default_from and hasattr(transport, "default_sender"):
        try:
            default_from = transport.default_sender()
        except Exception as e:
            return _failed(logger, f"Email not sent. Mail transport has no usable sender: {e}",
                           phase=PHASE_SENDING, exc_info=True)
    try:
        msg = build_message(config, default_from=default_from, default_charset=default_charset)
    except MailValidationError as e:
        return _failed(logger, str(e), phase=PHASE_VALIDATING)
    except (ValueError, UnicodeError) as e:
        # CR/LF in a header value, or a body the charset cannot encode.
        return _failed(logger, f"Email not sent. Message could not be built: {e}", phase=PHASE_VALIDATING)

    try:
        transport.send(msg)
    except ConnectorError as e:
        detail = f"{e}: {e.__cause__}" if e.__cause__ else str(e)
        return _failed(logger, f"Email not sent. {detail}", phase=PHASE_SENDING)
    except Exception as e:
        return _failed(logger, f"Email not sent. {type(e).__name__}: {e}", phase=PHASE_SENDING, exc_info=True)

    recipients = message_recipients(msg)
    logger.info(f"Email sent subject={config.subject!r} recipients={len(recipients)}")
    out: Dict[str, Any] = {
        "sent": True,
        "phase": PHASE_DONE,
        "subject": config.subject,
        "from": msg["From"],
        "recipients": recipients,
        "charset": resolve_charset(config, default_charset),
        "message_id": msg["Message-ID"],
    }
    return StepResult(status=STEP_SUCCESS, output=out)
