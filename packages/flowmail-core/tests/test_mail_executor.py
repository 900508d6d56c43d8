from __future__ import annotations

import logging

import pytest

from flowmail.core.exception import DispatchError
from flowmail.core.mail.config import MailConfig
from flowmail.core.mail.executor import execute_mail
from flowmail.core.mail.validation import MISSING_MANDATORY, MISSING_RECIPIENTS


class RecordingTransport:
    def __init__(self, sender=None, error: Exception | None = None):
        self.sender = sender
        self.error = error
        self.sent = []

    def default_sender(self):
        return self.sender

    def send(self, msg):
        self.sent.append(msg)
        if self.error is not None:
            raise self.error


def _cfg(**kw) -> MailConfig:
    cfg = MailConfig(kw.pop("subject", "Hello friend"), kw.pop("body", "Missing you!"))
    for k, v in kw.items():
        setattr(cfg, k, v)
    return cfg


def test_success_sends_exactly_one_message(caplog: pytest.LogCaptureFixture):
    transport = RecordingTransport(sender="ci@x.org")
    caplog.set_level(logging.INFO)

    result = execute_mail(_cfg(to="tom.abcd@jenkins.org", cc="c@x.org"), transport)

    assert result.status == "SUCCESS"
    assert len(transport.sent) == 1
    msg = transport.sent[0]
    assert msg["Subject"] == "Hello friend"
    assert msg["To"] == "tom.abcd@jenkins.org"
    assert msg["From"] == "ci@x.org"
    assert next(msg.iter_parts()).get_content().strip() == "Missing you!"
    out = result.as_output()
    assert out["sent"] is True
    assert out["recipients"] == ["tom.abcd@jenkins.org", "c@x.org"]
    assert out["charset"] == "UTF-8"
    assert "Email sent" in caplog.text


def test_explicit_default_from_wins_over_transport_sender():
    transport = RecordingTransport(sender="transport@x.org")
    execute_mail(_cfg(to="a@x.org"), transport, default_from="admin@x.org")
    assert transport.sent[0]["From"] == "admin@x.org"


@pytest.mark.parametrize(
    "cfg, reason",
    [
        (_cfg(subject="", to="a@x.org"), MISSING_MANDATORY),
        (_cfg(body=" ", to="a@x.org"), MISSING_MANDATORY),
        (_cfg(subject=""), MISSING_MANDATORY),
        (_cfg(), MISSING_RECIPIENTS),
    ],
)
def test_validation_failure_sends_nothing(cfg, reason, caplog: pytest.LogCaptureFixture):
    transport = RecordingTransport()
    logger = logging.getLogger("test.mail.job")

    result = execute_mail(cfg, transport, logger=logger)

    assert result.failed
    assert result.reason == reason
    assert result.output["phase"] == "validating"
    assert transport.sent == []
    assert any(r.name == "test.mail.job" and r.getMessage() == reason for r in caplog.records)


def test_dispatch_failure_is_a_failed_result_not_an_exception(caplog: pytest.LogCaptureFixture):
    cause = ConnectionRefusedError(111, "Connection refused")
    err = DispatchError("SMTP connect to smtp.example:25 failed")
    err.__cause__ = cause
    transport = RecordingTransport(error=err)

    result = execute_mail(_cfg(to="a@x.org"), transport)

    assert result.failed
    assert result.output["phase"] == "sending"
    assert result.reason.startswith("Email not sent. SMTP connect to smtp.example:25 failed")
    assert "Connection refused" in result.reason
    assert len(transport.sent) == 1
    assert result.reason in caplog.text


def test_missing_transport():
    result = execute_mail(_cfg(to="a@x.org"), None)
    assert result.failed
    assert result.reason == "Email not sent. No mail transport configured."


def test_missing_transport_still_reports_validation_first():
    result = execute_mail(_cfg(), None)
    assert result.reason == MISSING_RECIPIENTS


def test_unsupported_charset_fails_before_sending():
    transport = RecordingTransport()
    result = execute_mail(_cfg(to="a@x.org", charset="bogus-charset"), transport)
    assert result.failed
    assert "Unsupported charset" in result.reason
    assert transport.sent == []


def test_executor_is_stateless_between_invocations():
    transport = RecordingTransport()
    assert execute_mail(_cfg(), transport).failed
    assert execute_mail(_cfg(to="a@x.org"), transport).status == "SUCCESS"
    assert len(transport.sent) == 1


def test_body_the_charset_cannot_encode_fails_instead_of_raising():
    transport = RecordingTransport(sender="ci@x.org")
    result = execute_mail(_cfg(body="café", to="a@x.org", charset="US-ASCII"), transport)
    assert result.failed
    assert result.output["phase"] == "validating"
    assert result.reason.startswith("Email not sent. Message could not be built:")
    assert transport.sent == []


@pytest.mark.parametrize(
    "field, value",
    [
        ("subject", "Hello\nfriend"),
        ("from_", "ci@x.org\r\nBcc: evil@x.org"),
        ("reply_to", "r@x.org\nX-Injected: 1"),
    ],
)
def test_line_breaks_in_headers_fail_instead_of_raising(field, value):
    transport = RecordingTransport(sender="ci@x.org")
    result = execute_mail(_cfg(to="a@x.org", **{field: value}), transport)
    assert result.failed
    assert result.reason.startswith("Email not sent. Message could not be built:")
    assert transport.sent == []


def test_raw_transport_error_is_a_failed_result(caplog: pytest.LogCaptureFixture):
    transport = RecordingTransport(sender="ci@x.org", error=ConnectionRefusedError(111, "refused"))

    result = execute_mail(_cfg(to="a@x.org"), transport)

    assert result.failed
    assert result.output["phase"] == "sending"
    assert result.reason == "Email not sent. ConnectionRefusedError: [Errno 111] refused"
    assert len(transport.sent) == 1
    assert any(r.exc_info for r in caplog.records if r.getMessage() == result.reason)


def test_failing_default_sender_is_a_failed_result():
    class BrokenSender(RecordingTransport):
        def default_sender(self):
            raise RuntimeError("credential store locked")

    transport = BrokenSender()
    result = execute_mail(_cfg(to="a@x.org"), transport)
    assert result.failed
    assert "credential store locked" in result.reason
    assert transport.sent == []
