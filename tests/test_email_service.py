"""Tests for the SendGrid email service (never configured in tests)."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.services.email_service import EmailService, _escape, _format_date
from app.services.mandat_normalizer import Address, MandatView


@pytest.fixture
def service(monkeypatch):
    service = EmailService()
    service.api_key = ""
    sent = []

    original = service.send_generic

    def capture(to, subject, html_content):
        sent.append({"to": to, "subject": subject, "html": html_content})
        return original(to, subject, html_content)

    monkeypatch.setattr(service, "send_generic", capture)
    service.sent = sent
    return service


def test_unconfigured_service_simulates_send():
    service = EmailService()
    service.api_key = ""
    assert service.send_generic("a@example.ch", "Hello", "<p>Hi</p>") is True


def test_missing_recipient_is_not_sent():
    service = EmailService()
    assert service.send_generic("", "Hello", "<p>Hi</p>") is False


def test_escape():
    assert _escape('<b>"Tom" & Jerry\'s</b>') == "&lt;b&gt;&quot;Tom&quot; &amp; Jerry&#x27;s&lt;/b&gt;"
    assert _escape(None) == ""


def test_format_date():
    assert _format_date(datetime(2026, 10, 19, 8, 30)) == "19/10/2026 08:30"
    assert _format_date(None) == ""


def test_company_rejected_escapes_reason(service):
    company = SimpleNamespace(name="Acme <SA>", type="expediteur")

    assert service.send_company_rejected("owner@acme.ch", "Léa", company, "<script>x</script>")

    html = service.sent[0]["html"]
    assert "&lt;script&gt;" in html
    assert "<script>" not in html
    assert "Acme &lt;SA&gt;" in html


def test_company_approved_links_to_dashboard(service):
    company = SimpleNamespace(name="Rapid", type="transporteur")

    service.send_company_approved("owner@rapid.ch", "Marc", company)

    assert "/transporteur" in service.sent[0]["html"]


def test_mandat_approved(service):
    view = MandatView(
        id=42,
        status="approved",
        nom="Palettes",
        description=None,
        depart=Address(adresse="Genève"),
        arrivee=Address(adresse="Berne"),
        enlevement_debut_at=datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc),
    )

    service.send_mandat_approved("shipper@acme.ch", "Léa", view)

    message = service.sent[0]
    assert message["subject"] == 'Votre mandat "Palettes" a été approuvé'
    assert "/expediteur/mandats/42" in message["html"]
    assert "02/11/2026 08:00" in message["html"]


def test_company_invitation(service):
    invitation = SimpleNamespace(
        email="new@acme.ch",
        role="admin",
        expires_at=datetime(2026, 10, 26, 12, 0, tzinfo=timezone.utc),
    )

    service.send_company_invitation(invitation, "Acme", "Léa Muller", "http://front/invite/accept?token=t")

    message = service.sent[0]
    assert message["to"] == "new@acme.ch"
    assert "administrateur" in message["html"]
    assert "token=t" in message["html"]
