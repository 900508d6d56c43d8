import tempfile
import shutil
from pathlib import Path

import sys

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import pytest
from flowmail.core.builtins.connectors import MemoryMail
from flowmail.core.runtime.settings import Settings


@pytest.fixture()
def temp_dir():
    d = Path(tempfile.mkdtemp(prefix="flowmail_test_"))
    try:
        yield d
    finally:
        shutil.rmtree(d, ignore_errors=True)


@pytest.fixture()
def settings(temp_dir):
    return Settings(
        state_root=str(temp_dir / "state"),
        plugin_paths=[],
        plugin_strict=True,
        log_level="INFO",
    )


@pytest.fixture(autouse=True)
def _clear_mailboxes():
    MemoryMail.clear_all()
    yield
    MemoryMail.clear_all()


class DummySMTP:
    def __init__(self, host=None, port=None, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sent = []
        self.logins = []
        self.closed = False
        self.tls = False

    def ehlo(self):
        return None

    def starttls(self):
        self.tls = True
        return None

    def login(self, user, pwd):
        self.logins.append((user, pwd))
        return None

    def send_message(self, msg, from_addr=None, to_addrs=None):
        self.sent.append(msg)
        return {}

    def quit(self):
        self.closed = True

    def close(self):
        self.closed = True


@pytest.fixture()
def dummy_smtp(monkeypatch):
    import smtplib

    dummy = DummySMTP()

    def _smtp(host=None, port=None, timeout=None):
        dummy.host = host
        dummy.port = port
        dummy.timeout = timeout
        return dummy

    monkeypatch.setattr(smtplib, "SMTP", _smtp)
    return dummy
