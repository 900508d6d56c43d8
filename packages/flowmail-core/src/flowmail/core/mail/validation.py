from __future__ import annotations

from typing import Optional

from flowmail.core.exception import MailValidationError
from flowmail.core.mail.config import MailConfig

MISSING_MANDATORY = "Email not sent. All mandatory properties must be supplied ('subject', 'body')."
MISSING_RECIPIENTS = "Email not sent. No recipients of any kind specified ('to', 'cc', 'bcc')."


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_config(config: MailConfig) -> Optional[str]:
    """Return the reason `config` cannot be sent, or None when it is sendable.

    Subject/body are checked first; recipients only when both are present.
    """
    if is_blank(config.subject) or is_blank(config.body):
        return MISSING_MANDATORY
    if is_blank(config.to) and is_blank(config.cc) and is_blank(config.bcc):
        return MISSING_RECIPIENTS
    return None


def require_sendable(config: MailConfig) -> None:
    reason = validate_config(config)
    if reason is not None:
        raise MailValidationError(reason)
