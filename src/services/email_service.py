"""Email service using Resend for transactional emails."""

import html
import logging
from typing import Any

import resend

from src.core.config import get_settings
from src.core.i18n import translate

logger = logging.getLogger(__name__)


def _render_html(heading: str, body: str, cta: str, url: str, footer: str | None, fallback: str, locale: str) -> str:
    footer_html = (
        f"""
        <p style="font-size: 12px; color: #9ca3af; margin-top: 30px; text-align: center;">
            {html.escape(footer)}
        </p>
"""
        if footer
        else ""
    )
    safe_url = html.escape(url, quote=True)

    return f"""
<!DOCTYPE html>
<html lang="{locale}">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(heading)}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1f2937; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">{html.escape(heading)}</h1>
    </div>

    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px; margin-bottom: 20px;">{html.escape(body)}</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{safe_url}" style="background: #2563eb; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600; font-size: 16px; display: inline-block;">
                {html.escape(cta)}
            </a>
        </div>
{footer_html}
        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 25px 0;">

        <p style="font-size: 12px; color: #9ca3af; text-align: center; margin: 0;">
            {html.escape(fallback)}<br>
            <a href="{safe_url}" style="color: #2563eb; word-break: break-all;">{safe_url}</a>
        </p>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend.

    Send methods never raise. They return ``{"success": False, ...}`` on
    failure and leave it to the caller to decide whether that is fatal.
    """

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url
        self.expiry_days = settings.invitation_expiry_days

    def _send(self, to_email: str, subject: str, html_content: str, text_content: str, kind: str) -> dict[str, Any]:
        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
                "text": text_content,
            })

            logger.info("%s email sent to %s, id: %s", kind, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send %s email to %s: %s", kind, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_invitation_email(
        self,
        to_email: str,
        inviter_name: str,
        organization_name: str,
        role_name: str,
        invite_url: str,
        locale: str,
    ) -> dict[str, Any]:
        """Send a personal invitation email.

        Args:
            to_email: Recipient email address.
            inviter_name: Name of the person who sent the invite.
            organization_name: Name of the organization being invited to.
            role_name: Role the invitee will hold.
            invite_url: Locale-aware deep link carrying the token.
            locale: Language of the email.

        Returns:
            dict: ``success`` and the Resend email ID or error.
        """
        params = {
            "organization_name": organization_name,
            "inviter_name": inviter_name,
            "role_name": role_name,
            "days": self.expiry_days,
        }
        subject = translate("email.invitation.subject", locale, **params)
        heading = translate("email.invitation.heading", locale)
        body = translate("email.invitation.body", locale, **params)
        cta = translate("email.invitation.cta", locale)
        expires = translate("email.invitation.expires", locale, **params)
        fallback = translate("email.fallback_link", locale)

        html_content = _render_html(heading, body, cta, invite_url, expires, fallback, locale)
        text_content = f"""
{heading}

{body}

{cta}:
{invite_url}

{expires}
"""
        return self._send(to_email, subject, html_content, text_content, "Invitation")

    async def send_approval_email(
        self,
        to_email: str,
        organization_name: str,
        locale: str,
    ) -> dict[str, Any]:
        """Tell a user their request to join through a general link was approved.

        Args:
            to_email: Recipient email address.
            organization_name: Organization the user was admitted to.
            locale: Language of the email.

        Returns:
            dict: ``success`` and the Resend email ID or error.
        """
        url = f"{self.frontend_url}/{locale}"
        subject = translate("email.approval.subject", locale, organization_name=organization_name)
        heading = translate("email.approval.heading", locale)
        body = translate("email.approval.body", locale, organization_name=organization_name)
        cta = translate("email.approval.cta", locale)
        fallback = translate("email.fallback_link", locale)

        html_content = _render_html(heading, body, cta, url, None, fallback, locale)
        text_content = f"""
{heading}

{body}

{cta}:
{url}
"""
        return self._send(to_email, subject, html_content, text_content, "Approval")
