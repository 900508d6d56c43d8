from __future__ import annotations

import logging
import smtplib
import threading
from collections import deque
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Deque, Dict, List

from flowmail.core.connectors.base import ConnectorInit
from flowmail.core.exception import DispatchError
from flowmail.core.mail.message import message_recipients
from flowmail.core.registry.connectors import register_connector

log = logging.getLogger("flowmail.core.builtin.connectors")


def _opt(options: dict, *keys: str, default=None):
    cur = options
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


class _Base:
    """Small concrete base for built-in connectors (keeps init consistent)."""

    def __init__(self, init: ConnectorInit):
        self.name = init.name
        self.kind = init.kind
        self.driver = init.driver
        self.config = init.config or {}
        self.options = init.options or {}
        self.ctx = init.ctx

    def default_sender(self) -> str | None:
        return self.config.get("from_addr") or None

    def close(self) -> None:
        return None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.close()
        except Exception:
            log.warning("non-critical connector operation failed; continuing", exc_info=True)


@register_connector("mail", "smtp")
class SMTPMail(_Base):
    """Mail connector backed by smtplib (stdlib).

    Config keys (resource.config):
      - host (required)
      - port (default 25)
      - username (optional)
      - password (optional)
      - starttls (default true when port==587)
      - from_addr (default: username)
    Options (resource.options):
      - timeout (seconds, default 30)

    send() makes exactly one delivery attempt; every failure is raised as
    DispatchError with the smtplib/socket error chained.
    """

    def __init__(self, init: ConnectorInit):
        super().__init__(init)
        self._smtp = None

    def _timeout(self) -> float:
        return float(_opt(self.options, "timeout", default=30) or 30)

    def _port(self) -> int:
        return int(self.config.get("port", 25))

    def _starttls(self) -> bool:
        if "starttls" in self.config:
            return bool(self.config.get("starttls"))
        return self._port() == 587

    def default_sender(self) -> str | None:
        return str(self.config.get("from_addr") or self.config.get("username") or "") or None

    def client(self):
        if self._smtp is not None:
            return self._smtp

        host = self.config.get("host")
        if not host:
            raise DispatchError("mail.smtp requires config.host")

        try:
            smtp = smtplib.SMTP(host=host, port=self._port(), timeout=self._timeout())
            smtp.ehlo()
        except (OSError, smtplib.SMTPException) as e:
            raise DispatchError(f"SMTP connect to {host}:{self._port()} failed") from e
        if self._starttls():
            try:
                smtp.starttls()
                smtp.ehlo()
            except (OSError, smtplib.SMTPException) as e:
                raise DispatchError("SMTP STARTTLS failed") from e

        user = self.config.get("username")
        pwd = self.config.get("password")
        if user and pwd:
            try:
                smtp.login(user, pwd)
            except (OSError, smtplib.SMTPException) as e:
                raise DispatchError("SMTP login failed") from e

        self._smtp = smtp
        return self._smtp

    def close(self) -> None:
        if self._smtp is None:
            return
        try:
            try:
                self._smtp.quit()
            except (OSError, smtplib.SMTPException):
                self._smtp.close()
        finally:
            self._smtp = None

    def send(self, msg: EmailMessage) -> None:
        if not msg["From"]:
            raise DispatchError("SMTP requires a sender address; set 'from' or config.from_addr")
        try:
            # send_message() derives envelope recipients from To/Cc/Bcc and drops the Bcc header.
            refused = self.client().send_message(msg)
        except (OSError, smtplib.SMTPException) as e:
            try:
                self.close()
            except Exception:
                log.warning("non-critical connector operation failed; continuing", exc_info=True)
            raise DispatchError("SMTP send failed") from e
        if refused:
            log.warning(f"SMTP refused some recipients: {sorted(refused)}")


# address (lowercased) -> delivered messages, newest last
_MAILBOXES: Dict[str, Deque[EmailMessage]] = {}
_MAILBOX_LOCK = threading.Lock()
MAILBOX_LIMIT = 100


@register_connector("mail", "memory")
class MemoryMail(_Base):
    """In-process mail transport for tests and dry runs; nothing leaves the process.

    Every recipient (To, Cc, Bcc) gets a copy of the message, without the Bcc
    header. Mailboxes are process-wide so they can be inspected after the run
    has closed its connectors; each keeps only the latest `max_messages`
    messages. Call clear_all() between tests.

    Config keys (resource.config):
      - from_addr (optional default sender)
      - reject: list of addresses the transport refuses (raises DispatchError)
      - max_messages: per-address mailbox size (default 100)
    """

    def _limit(self) -> int:
        return max(1, int(self.config.get("max_messages") or MAILBOX_LIMIT))

    def send(self, msg: EmailMessage) -> None:
        recipients = message_recipients(msg)
        if not recipients:
            raise DispatchError("No recipient addresses")
        rejected = {a.lower() for a in (self.config.get("reject") or [])}
        bad = [r for r in recipients if r.lower() in rejected]
        if bad:
            raise DispatchError(f"Recipient address rejected: {', '.join(bad)}")

        # Round-trip through bytes so mailboxes hold what a server would have received.
        delivered = BytesParser(policy=policy.default).parsebytes(msg.as_bytes())
        del delivered["Bcc"]
        with _MAILBOX_LOCK:
            for rcpt in recipients:
                box = _MAILBOXES.setdefault(rcpt.lower(), deque(maxlen=self._limit()))
                box.append(delivered)

    @staticmethod
    def mailbox(address: str) -> List[EmailMessage]:
        with _MAILBOX_LOCK:
            return list(_MAILBOXES.get(address.lower(), []))

    @staticmethod
    def clear_all() -> None:
        with _MAILBOX_LOCK:
            _MAILBOXES.clear()
