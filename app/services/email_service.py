"""
SendGrid email service for Spontis.

Handles moderation notifications (companies and mandats) and company
invitations via the SendGrid API. Falls back to logging in development when
no API key is set.
"""

import logging
from datetime import date, datetime
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, HtmlContent

from app.config import get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Email service using SendGrid.

    If sendgrid_api_key is empty, emails are logged but not sent,
    allowing local development without a real API key.
    """

    def __init__(self):
        settings = get_settings()
        self.api_key = settings.sendgrid_api_key
        self.from_email = settings.sendgrid_from_email
        self.from_name = settings.sendgrid_from_name
        self.frontend_url = settings.frontend_url.rstrip("/")
        self._client = None

    @property
    def client(self) -> SendGridAPIClient | None:
        """Lazy-init SendGrid client."""
        if self._client is None and self.api_key:
            self._client = SendGridAPIClient(api_key=self.api_key)
        return self._client

    @property
    def is_configured(self) -> bool:
        """Check whether a real API key is configured."""
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Generic sender
    # ------------------------------------------------------------------

    def send_generic(self, to: str, subject: str, html_content: str) -> bool:
        """
        Send a generic email.

        Returns:
            True if the email was sent (or simulated) successfully.
        """
        if not to:
            logger.warning("No recipient for email %r, not sent.", subject)
            return False

        if not self.is_configured:
            logger.warning(
                "SendGrid API key not configured, simulating email send. "
                "To=%s Subject=%s",
                to,
                subject,
            )
            return True

        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to),
            subject=subject,
            html_content=HtmlContent(html_content),
        )

        try:
            response = self.client.send(message)
            logger.info(
                "Email sent via SendGrid. to=%s subject=%s status=%s",
                to,
                subject,
                response.status_code,
            )
            return True
        except Exception as exc:
            logger.error(
                "Failed to send email via SendGrid. to=%s subject=%s error=%s",
                to,
                subject,
                exc,
            )
            return False

    # ------------------------------------------------------------------
    # Company moderation
    # ------------------------------------------------------------------

    def send_company_approved(self, to: str, recipient_name: str, company: Any) -> bool:
        """Tell the company creator their company can now use the platform."""
        dashboard = "transporteur" if getattr(company, "type", None) == "transporteur" else "expediteur"
        body = f"""
            <p>Bonjour {_escape(recipient_name)},</p>
            <p>Nous avons le plaisir de vous informer que votre entreprise
            <strong>{_escape(company.name)}</strong> a été approuvée par notre équipe.</p>
            <p>Vous pouvez maintenant utiliser pleinement la plateforme Spontis.</p>
            {_button(f"{self.frontend_url}/{dashboard}", "Accéder au dashboard", "#4CAF50")}"""
        return self.send_generic(
            to,
            "Votre entreprise Spontis a été approuvée",
            _layout("Félicitations !", "#4CAF50", body),
        )

    def send_company_rejected(self, to: str, recipient_name: str, company: Any, reason: str) -> bool:
        body = f"""
            <p>Bonjour {_escape(recipient_name)},</p>
            <p>Nous avons examiné votre demande d'inscription pour l'entreprise
            <strong>{_escape(company.name)}</strong>.</p>
            <p>Malheureusement, nous ne pouvons pas l'approuver pour la raison suivante :</p>
            {_reason_box(reason)}
            <p>Si vous souhaitez corriger ces points, n'hésitez pas à nous contacter.</p>
            {_button("mailto:contact@spontis.ch", "Nous contacter", "#007bff")}"""
        return self.send_generic(
            to,
            "Votre demande d'inscription Spontis",
            _layout("Demande d'inscription", "#dc3545", body),
        )

    # ------------------------------------------------------------------
    # Mandat moderation
    # ------------------------------------------------------------------

    def send_mandat_approved(self, to: str, recipient_name: str, view: Any) -> bool:
        """
        Notify the mandat creator that the mandat is published on the marketplace.

        Args:
            view: MandatView of the approved mandat.
        """
        body = f"""
            <p>Bonjour {_escape(recipient_name)},</p>
            <p>Votre mandat <strong>{_escape(view.nom)}</strong> a été approuvé et est
            maintenant visible par les transporteurs.</p>
            {_mandat_table(view)}
            {_button(f"{self.frontend_url}/expediteur/mandats/{view.id}", "Voir le mandat", "#4CAF50")}"""
        return self.send_generic(
            to,
            f"Votre mandat \"{view.nom}\" a été approuvé",
            _layout("Mandat approuvé", "#4CAF50", body),
        )

    def send_mandat_rejected(self, to: str, recipient_name: str, view: Any, reason: str) -> bool:
        body = f"""
            <p>Bonjour {_escape(recipient_name)},</p>
            <p>Votre mandat <strong>{_escape(view.nom)}</strong> n'a pas pu être approuvé.</p>
            {_reason_box(reason)}
            {_mandat_table(view)}
            <p>Vous pouvez créer un nouveau mandat en tenant compte de ces remarques.</p>"""
        return self.send_generic(
            to,
            f"Votre mandat \"{view.nom}\" n'a pas été approuvé",
            _layout("Mandat refusé", "#dc3545", body),
        )

    # ------------------------------------------------------------------
    # Company invitation
    # ------------------------------------------------------------------

    def send_company_invitation(
        self,
        invitation: Any,
        company_name: str,
        inviter_name: str,
        accept_url: str,
    ) -> bool:
        """
        Invite someone to join a company.

        Args:
            invitation: CompanyInvitation with email, role and expires_at.
            company_name: Display name of the inviting company.
            inviter_name: Name of the member who sent the invitation.
            accept_url: Link to the invitation acceptance page (contains the token).
        """
        role_label = "administrateur" if invitation.role == "admin" else "membre"
        body = f"""
            <p>Bonjour,</p>
            <p><strong>{_escape(inviter_name)}</strong> vous invite à rejoindre
            l'entreprise <strong>{_escape(company_name)}</strong> sur Spontis en tant que
            {role_label}.</p>
            {_button(accept_url, "Accepter l'invitation", "#0FB6BC")}
            <p style="color:#6c757d;">Cette invitation expire le {_format_date(invitation.expires_at)}.</p>"""
        return self.send_generic(
            invitation.email,
            f"Invitation à rejoindre {company_name} sur Spontis",
            _layout("Invitation", "#0FB6BC", body),
        )


# ======================================================================
# Private helpers
# ======================================================================


def _format_date(value: Any) -> str:
    """Return a human-readable date string (DD/MM/YYYY, with time when known)."""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, str):
        return value
    return str(value) if value else ""


def _layout(title: str, color: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;margin:0;">
    <div style="background-color:{color};color:white;padding:20px;text-align:center;">
        <h1 style="margin:0;">{_escape(title)}</h1>
    </div>
    <div style="padding:30px;">
        {body}
    </div>
    <div style="background-color:#f8f9fa;padding:20px;text-align:center;color:#6c757d;">
        <p>Cordialement,<br><strong>L'équipe Spontis</strong></p>
        <p><small>Cet email a été envoyé automatiquement, merci de ne pas y répondre.</small></p>
    </div>
</body>
</html>"""


def _button(href: str, label: str, color: str) -> str:
    return (
        f'<div style="text-align:center;"><a href="{_escape(href)}" '
        f'style="display:inline-block;background-color:{color};color:white;padding:12px 24px;'
        f'text-decoration:none;border-radius:5px;margin:20px 0;">{_escape(label)}</a></div>'
    )


def _reason_box(reason: str) -> str:
    return (
        '<div style="background-color:#f8f9fa;border-left:4px solid #dc3545;padding:15px;margin:20px 0;">'
        f"<strong>Motif :</strong> {_escape(reason)}</div>"
    )


def _mandat_table(view: Any) -> str:
    rows = [
        ("Description", view.description),
        ("Départ", view.depart.adresse),
        ("Arrivée", view.arrivee.adresse),
        ("Enlèvement souhaité", _format_date(view.enlevement_debut_at)),
    ]
    cells = "".join(
        f'<tr><td style="padding:8px 12px;border-bottom:1px solid #eee;color:#525252;font-weight:600;">{label}</td>'
        f'<td style="padding:8px 12px;border-bottom:1px solid #eee;color:#171717;">{_escape(value) or "-"}</td></tr>'
        for label, value in rows
    )
    return f'<table style="width:100%;border-collapse:collapse;margin:20px 0;">{cells}</table>'


def _escape(value: Any) -> str:
    """Minimal HTML escape for user-provided values."""
    if value is None:
        return ""
    s = str(value)
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
    )


def get_email_service() -> EmailService:
    """FastAPI dependency."""
    return EmailService()
