"""Mail step core: configuration binding, validation, message building and execution."""

from __future__ import annotations

from flowmail.core.mail.config import STEP_TYPE, MailConfig, MailInputs
from flowmail.core.mail.executor import execute_mail
from flowmail.core.mail.message import build_message, parse_addresses
from flowmail.core.mail.validation import MISSING_MANDATORY, MISSING_RECIPIENTS, validate_config

__all__ = [
    "STEP_TYPE",
    "MailConfig",
    "MailInputs",
    "MISSING_MANDATORY",
    "MISSING_RECIPIENTS",
    "validate_config",
    "build_message",
    "parse_addresses",
    "execute_mail",
]
