from email import message_from_string
from email.header import decode_header, make_header

import pytest

import app.email_utils as email_utils


class FakeSMTP:
    instances = []

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def sendmail(self, sender, recipients, message):
        self.calls.append(("sendmail", sender, recipients, message))


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_utils.smtplib, "SMTP", FakeSMTP)


def _send(**kw):
    values = dict(
        host="smtp.example.com",
        port=587,
        username="",
        password="",
        sender="bot@example.com",
        to=["a@example.com"],
        subject="New remote jobs",
        body="New remote jobs:\n",
    )
    values.update(kw)
    email_utils.send_email_message(**values)
    return FakeSMTP.instances[-1]


def test_non_ascii_subject_is_encoded():
    smtp = _send(subject="新的远程工作")

    _, sender, recipients, raw = smtp.calls[-1]
    assert sender == "bot@example.com"
    assert recipients == ["a@example.com"]
    assert "=?utf-8?" in raw

    parsed = message_from_string(raw)
    decoded = make_header(decode_header(parsed["Subject"]))
    assert str(decoded) == "新的远程工作"


def test_login_only_with_credentials():
    assert [c for c in _send().calls if c == "starttls"] == []

    smtp = _send(username="bot@example.com", password="secret")
    assert smtp.calls[:2] == ["starttls", ("login", "bot@example.com")]


@pytest.mark.parametrize("kw", [{"host": ""}, {"to": []}, {"sender": "", "username": ""}])
def test_missing_settings_raise(kw):
    with pytest.raises(RuntimeError):
        _send(**kw)
