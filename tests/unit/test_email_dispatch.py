import asyncio
import smtplib
import subprocess
import time
from email.message import EmailMessage

import pytest

from formrelay.api.v1.forms import get_form_validator, get_submission_service
from formrelay.core import email as email_module
from formrelay.core.email import (
    DISPATCH_GRACE_SECONDS,
    MailDispatcher,
    SendmailTransport,
    SmtpTransport,
    build_transport,
)
from formrelay.core.errors import TransportError


def _message():
    msg = EmailMessage()
    msg["From"] = "noreply@example.com"
    msg["To"] = "inbox@example.com"
    msg["Subject"] = "New Contact Form Submission"
    msg.set_content("<p>hello</p>", subtype="html")
    return msg


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        self.refused = {}
        self.fail_with = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user, password))

    def send_message(self, message):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append(("send", message["Subject"]))
        return self.refused


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


# -----------------------------------------------------------------------------
# MailDispatcher
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_dispatch_returns_true_when_accepted(transport):
    dispatcher = MailDispatcher(transport, timeout=5)

    assert await dispatcher.dispatch(_message()) is True
    assert len(transport.messages) == 1


@pytest.mark.asyncio
async def test_dispatch_returns_false_on_transport_error(transport):
    transport.reject()
    dispatcher = MailDispatcher(transport, timeout=5)

    assert await dispatcher.dispatch(_message()) is False
    assert transport.messages == []


@pytest.mark.asyncio
async def test_dispatch_returns_false_on_timeout():
    class SlowTransport:
        def send(self, message):
            time.sleep(0.5)

    dispatcher = MailDispatcher(SlowTransport(), timeout=0.05)

    assert await dispatcher.dispatch(_message()) is False


@pytest.mark.asyncio
async def test_dispatch_propagates_unexpected_errors():
    class BrokenTransport:
        def send(self, message):
            raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        await MailDispatcher(BrokenTransport(), timeout=5).dispatch(_message())


# -----------------------------------------------------------------------------
# SmtpTransport
# -----------------------------------------------------------------------------


def test_smtp_requires_host():
    with pytest.raises(TransportError, match="SMTP_HOST"):
        SmtpTransport(host=None).send(_message())


def test_smtp_sends_with_starttls_and_login(fake_smtp):
    SmtpTransport("smtp.test", 2525, "mailer", "secret", timeout=7).send(_message())

    server = fake_smtp.instances[0]
    assert (server.host, server.port, server.timeout) == ("smtp.test", 2525, 7)
    assert server.calls == [
        "starttls",
        ("login", "mailer", "secret"),
        ("send", "New Contact Form Submission"),
    ]


def test_smtp_skips_login_without_credentials(fake_smtp):
    SmtpTransport("smtp.test", starttls=False).send(_message())

    assert fake_smtp.instances[0].calls == [("send", "New Contact Form Submission")]


def test_smtp_refused_recipients_raise(fake_smtp, monkeypatch):
    original_init = FakeSMTP.__init__

    def _init(self, *args, **kwargs):
        original_init(self, *args, **kwargs)
        self.refused = {"inbox@example.com": (550, b"no such user")}

    monkeypatch.setattr(FakeSMTP, "__init__", _init)

    with pytest.raises(TransportError, match="refused"):
        SmtpTransport("smtp.test").send(_message())


def test_smtp_errors_become_transport_errors(fake_smtp, monkeypatch):
    original_init = FakeSMTP.__init__

    def _init(self, *args, **kwargs):
        original_init(self, *args, **kwargs)
        self.fail_with = smtplib.SMTPDataError(554, b"rejected")

    monkeypatch.setattr(FakeSMTP, "__init__", _init)

    with pytest.raises(TransportError):
        SmtpTransport("smtp.test").send(_message())


def test_smtp_connection_errors_become_transport_errors(monkeypatch):
    def _refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(email_module.smtplib, "SMTP", _refuse)

    with pytest.raises(TransportError):
        SmtpTransport("smtp.test").send(_message())


# -----------------------------------------------------------------------------
# SendmailTransport
# -----------------------------------------------------------------------------


def test_sendmail_pipes_message(monkeypatch):
    calls = []

    def _run(args, **kwargs):
        calls.append((args, kwargs))
        return subprocess.CompletedProcess(args, 0, b"", b"")

    monkeypatch.setattr(email_module.subprocess, "run", _run)

    SendmailTransport("/usr/sbin/sendmail", timeout=3).send(_message())

    args, kwargs = calls[0]
    assert args == ["/usr/sbin/sendmail", "-t", "-i"]
    assert kwargs["timeout"] == 3
    assert b"Subject: New Contact Form Submission" in kwargs["input"]


def test_sendmail_non_zero_exit_raises(monkeypatch):
    monkeypatch.setattr(
        email_module.subprocess,
        "run",
        lambda args, **kwargs: subprocess.CompletedProcess(args, 75, b"", b"queue full"),
    )

    with pytest.raises(TransportError, match="queue full"):
        SendmailTransport().send(_message())


def test_sendmail_missing_binary_raises(tmp_path):
    with pytest.raises(TransportError):
        SendmailTransport(str(tmp_path / "no-sendmail")).send(_message())


def test_sendmail_timeout_raises(monkeypatch):
    def _run(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs["timeout"])

    monkeypatch.setattr(email_module.subprocess, "run", _run)

    with pytest.raises(TransportError):
        SendmailTransport(timeout=1).send(_message())


# -----------------------------------------------------------------------------
# build_transport
# -----------------------------------------------------------------------------


def test_build_transport_selects_smtp(test_settings):
    transport = build_transport(test_settings)

    assert isinstance(transport, SmtpTransport)
    assert transport.host == "smtp.test"
    assert transport.timeout == test_settings.MAIL_TIMEOUT_SECONDS


def test_build_transport_selects_sendmail(test_settings):
    settings = test_settings.model_copy(
        update={"MAIL_TRANSPORT": "sendmail", "SENDMAIL_PATH": "/opt/bin/sendmail"}
    )

    transport = build_transport(settings)

    assert isinstance(transport, SendmailTransport)
    assert transport.path == "/opt/bin/sendmail"


@pytest.mark.asyncio
async def test_timed_out_send_may_still_complete(transport):
    class LateTransport:
        def send(self, message):
            time.sleep(0.2)
            transport.send(message)

    dispatcher = MailDispatcher(LateTransport(), timeout=0.05)

    assert await dispatcher.dispatch(_message()) is False
    await asyncio.sleep(0.4)
    assert len(transport.messages) == 1


def test_dispatcher_waits_longer_than_transport_timeout(test_settings, transport):
    service = get_submission_service(
        settings=test_settings,
        validator=get_form_validator(test_settings),
        transport=build_transport(test_settings),
    )

    assert service.dispatcher.timeout == (
        test_settings.MAIL_TIMEOUT_SECONDS + DISPATCH_GRACE_SECONDS
    )
    assert service.dispatcher.timeout > service.dispatcher.transport.timeout
