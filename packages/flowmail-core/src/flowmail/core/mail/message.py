from __future__ import annotations

import codecs
import re
from email.message import EmailMessage
from email.utils import formataddr, formatdate, getaddresses, make_msgid
from typing import List, Optional, Tuple

from flowmail.core.exception import MailValidationError
from flowmail.core.mail.config import MailConfig
from flowmail.core.mail.validation import is_blank, require_sendable

DEFAULT_MIME_TYPE = "text/plain"
DEFAULT_CHARSET = "UTF-8"

# Whitespace between two bare addresses ("a@x.org b@x.org") is treated as a separator.
# Display names ("Tom Smith <t@x.org>") are left alone because the next token has no '@'.
_BARE_SEPARATOR_RE = re.compile(r'(?<=[^\s,<"])\s+(?=[^\s,<>"]+@)')
_COMMA_RUN_RE = re.compile(r"\s*,[\s,]*")


def parse_addresses(value: Optional[str]) -> List[Tuple[str, str]]:
    """Split a comma and/or whitespace separated address list into (name, addr) pairs."""
    if is_blank(value):
        return []
    normalized = _COMMA_RUN_RE.sub(", ", value).strip(" ,\t\r\n")
    normalized = _BARE_SEPARATOR_RE.sub(", ", normalized)
    return [(name, addr) for name, addr in getaddresses([normalized]) if addr]


def _format_list(value: Optional[str]) -> Optional[str]:
    pairs = parse_addresses(value)
    if not pairs:
        return None
    return ", ".join(formataddr(p) for p in pairs)


def _subtype(mime_type: Optional[str]) -> str:
    raw = (mime_type or DEFAULT_MIME_TYPE).strip()
    return (raw.split("/", 1)[1] if "/" in raw else raw).strip().lower() or "plain"


def resolve_charset(config: MailConfig, default: Optional[str] = None) -> str:
    charset = config.charset if not is_blank(config.charset) else (default or DEFAULT_CHARSET)
    try:
        codecs.lookup(charset)
    except LookupError as e:
        raise MailValidationError(f"Email not sent. Unsupported charset {charset!r}.") from e
    return charset


def build_message(config: MailConfig, *, default_from: Optional[str] = None,
                  default_charset: Optional[str] = None) -> EmailMessage:
    """Build a multipart/mixed message with a single body part.

    The body part uses `config.mime_type` as its subtype (text/plain when
    unset) and the resolved charset. Bcc is set as a header; transports strip
    it before the message goes on the wire.
    """
    require_sendable(config)
    charset = resolve_charset(config, default_charset)

    msg = EmailMessage()
    msg["Subject"] = config.subject
    sender = config.from_ if not is_blank(config.from_) else default_from
    if not is_blank(sender):
        msg["From"] = sender
    for header, value in (("To", config.to), ("Cc", config.cc), ("Bcc", config.bcc)):
        formatted = _format_list(value)
        if formatted:
            msg[header] = formatted
    if not is_blank(config.reply_to):
        msg["Reply-To"] = config.reply_to
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()

    msg.set_content(config.body, subtype=_subtype(config.mime_type), charset=charset)
    # Wrap the body into a mixed container so attachments can be added later.
    msg.make_mixed()
    return msg


def message_recipients(msg: EmailMessage) -> List[str]:
    """Envelope recipients of `msg` (To + Cc + Bcc), in header order."""
    values = [v for h in ("To", "Cc", "Bcc") for v in msg.get_all(h, [])]
    return [addr for _, addr in getaddresses(values) if addr]


def body_text(msg: EmailMessage) -> str:
    """Content of the first body part (the mail step always produces exactly one)."""
    part = next(iter(msg.iter_parts()), None) if msg.is_multipart() else msg
    if part is None:
        return ""
    return part.get_content()
