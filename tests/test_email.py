"""
tests/test_email.py

Support ticket e-mail: message content and SMTP delivery (SMTP is faked).
"""

from __future__ import annotations

import smtplib

import pytest

from sellerdash.alerts import email as email_mod
from sellerdash.alerts.email import EmailDeliveryError, build_ticket_message, send_ticket_email
from sellerdash.schemas import TicketRequest

from tests.fakes import NOW


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.sent: list[tuple[str, list[str], str]] = []
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def ehlo(self) -> None:
        pass

    def starttls(self) -> None:
        pass

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def sendmail(self, from_addr: str, to_addrs: list[str], msg: str) -> None:
        self.sent.append((from_addr, to_addrs, msg))


class BrokenSMTP(FakeSMTP):
    def login(self, user: str, password: str) -> None:
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")


@pytest.fixture()
def ticket() -> TicketRequest:
    return TicketRequest(
        subject="Document Request",
        message="Need an invoice template.\n<script>alert(1)</script>",
        asin="B000AAA111",
        store_name="Acme Goods",
    )


@pytest.fixture()
def smtp_settings(monkeypatch):
    settings = email_mod.settings
    monkeypatch.setattr(settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(settings, "smtp_port", 2525)
    monkeypatch.setattr(settings, "smtp_user", "bot@agency.test")
    monkeypatch.setattr(settings, "smtp_password", "secret")
    monkeypatch.setattr(settings, "ticket_from_email", "")
    monkeypatch.setattr(settings, "ticket_recipients", "support@agency.test, Lead@Agency.test")
    FakeSMTP.instances = []
    return settings


# ---------------------------------------------------------------------------
# Message content
# ---------------------------------------------------------------------------


class TestBuildTicketMessage:
    def test_headers(self, ticket, smtp_settings) -> None:
        msg = build_ticket_message(ticket, "owner@acme.com", NOW)
        assert msg["Subject"] == "[Seller Dashboard] Document Request - Acme Goods"
        assert msg["From"] == "bot@agency.test"
        assert msg["To"] == "support@agency.test, lead@agency.test"
        assert msg["Reply-To"] == "owner@acme.com"

    def test_html_part_escapes_user_text(self, ticket, smtp_settings) -> None:
        msg = build_ticket_message(ticket, "owner@acme.com", NOW)
        text_part, html_part = msg.get_payload()
        html = html_part.get_payload(decode=True).decode()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "https://www.amazon.com/dp/B000AAA111" in html
        assert "Related ASIN: B000AAA111" in text_part.get_payload(decode=True).decode()

    def test_asin_row_is_optional(self, smtp_settings) -> None:
        ticket = TicketRequest(subject="Question", message="Hi", store_name="Acme Goods")
        msg = build_ticket_message(ticket, "owner@acme.com", NOW)
        assert "Related ASIN" not in msg.as_string()


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestSendTicketEmail:
    def test_sends_to_all_recipients(self, ticket, smtp_settings, monkeypatch) -> None:
        monkeypatch.setattr(email_mod.smtplib, "SMTP", FakeSMTP)
        assert send_ticket_email(ticket, "owner@acme.com", NOW) == 2

        server = FakeSMTP.instances[0]
        assert (server.host, server.port) == ("smtp.test", 2525)
        assert server.logged_in == ("bot@agency.test", "secret")
        from_addr, to_addrs, _ = server.sent[0]
        assert from_addr == "bot@agency.test"
        assert to_addrs == ["support@agency.test", "lead@agency.test"]

    def test_not_configured(self, ticket, smtp_settings, monkeypatch) -> None:
        monkeypatch.setattr(smtp_settings, "ticket_recipients", "")
        with pytest.raises(EmailDeliveryError):
            send_ticket_email(ticket, "owner@acme.com", NOW)

    def test_smtp_failure_is_wrapped(self, ticket, smtp_settings, monkeypatch) -> None:
        monkeypatch.setattr(email_mod.smtplib, "SMTP", BrokenSMTP)
        with pytest.raises(EmailDeliveryError) as excinfo:
            send_ticket_email(ticket, "owner@acme.com", NOW)
        assert "Failed to send email" in str(excinfo.value)
