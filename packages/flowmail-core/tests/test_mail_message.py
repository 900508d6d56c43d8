from __future__ import annotations

import pytest

from flowmail.core.exception import MailValidationError
from flowmail.core.mail.config import MailConfig
from flowmail.core.mail.message import body_text, build_message, message_recipients, parse_addresses


def _cfg(**kw) -> MailConfig:
    cfg = MailConfig(kw.pop("subject", "Build #42"), kw.pop("body", "All green"))
    cfg.to = "dev@x.org"
    for k, v in kw.items():
        setattr(cfg, k, v)
    return cfg


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a@x.org", ["a@x.org"]),
        ("a@x.org,b@x.org", ["a@x.org", "b@x.org"]),
        ("a@x.org, b@x.org c@x.org", ["a@x.org", "b@x.org", "c@x.org"]),
        ("a@x.org\n  b@x.org", ["a@x.org", "b@x.org"]),
        ("a@x.org,, b@x.org,", ["a@x.org", "b@x.org"]),
    ],
)
def test_parse_addresses_is_delimiter_tolerant(raw, expected):
    assert [addr for _, addr in parse_addresses(raw)] == expected


def test_parse_addresses_keeps_display_names():
    assert parse_addresses("Tom Smith <t@x.org>, b@x.org") == [("Tom Smith", "t@x.org"), ("", "b@x.org")]


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_parse_addresses_blank(raw):
    assert parse_addresses(raw) == []


def test_single_part_multipart_container():
    msg = build_message(_cfg())

    assert msg.get_content_type() == "multipart/mixed"
    parts = list(msg.iter_parts())
    assert len(parts) == 1
    assert parts[0].get_content_type() == "text/plain"
    assert parts[0].get_content_charset() == "utf-8"
    assert body_text(msg).strip() == "All green"
    assert msg["Subject"] == "Build #42"
    assert msg["Message-ID"]
    assert msg["Date"]


def test_mime_type_and_charset():
    msg = build_message(_cfg(body="<p>café</p>", mime_type="text/html", charset="ISO-8859-1"))

    part = next(msg.iter_parts())
    assert part.get_content_type() == "text/html"
    assert part.get_content_charset() == "iso-8859-1"
    assert part.get_content().strip() == "<p>café</p>"


def test_mime_type_without_slash_is_a_subtype():
    part = next(build_message(_cfg(mime_type="html")).iter_parts())
    assert part.get_content_type() == "text/html"


def test_default_charset_override():
    part = next(build_message(_cfg(), default_charset="ISO-8859-1").iter_parts())
    assert part.get_content_charset() == "iso-8859-1"


def test_unknown_charset_is_rejected():
    with pytest.raises(MailValidationError, match="Unsupported charset"):
        build_message(_cfg(charset="no-such-charset"))


def test_sender_falls_back_to_default():
    assert build_message(_cfg(), default_from="ci@x.org")["From"] == "ci@x.org"
    assert build_message(_cfg(from_="me@x.org"), default_from="ci@x.org")["From"] == "me@x.org"
    assert build_message(_cfg())["From"] is None


def test_recipient_headers_and_reply_to():
    msg = build_message(_cfg(to="a@x.org b@x.org", cc="c@x.org", bcc="d@x.org", reply_to="r@x.org"))

    assert msg["To"] == "a@x.org, b@x.org"
    assert msg["Cc"] == "c@x.org"
    assert msg["Bcc"] == "d@x.org"
    assert msg["Reply-To"] == "r@x.org"
    assert message_recipients(msg) == ["a@x.org", "b@x.org", "c@x.org", "d@x.org"]


def test_blank_optional_fields_are_not_set():
    msg = build_message(_cfg(cc="  ", bcc="", reply_to=" "))
    assert msg["Cc"] is None
    assert msg["Bcc"] is None
    assert msg["Reply-To"] is None


def test_invalid_config_is_not_built():
    with pytest.raises(MailValidationError):
        build_message(MailConfig("s", "b"))
