"""
services/email_service.py
-------------------------
Outbound e-mail through the Resend HTTP API.

Sending is fire-and-forget: routes schedule send_invitation() and
send_password_reset() as background tasks. A delivery failure is logged,
never raised, so it can never fail the call that triggered it.
"""

import html

import httpx

from chatdesk.core.config import settings
from chatdesk.core.logging import get_logger

logger = get_logger(__name__)


def invitation_html(user_name: str, tenant_name: str, temp_password: str, login_url: str) -> str:
    name = html.escape(user_name or "there")
    tenant = html.escape(tenant_name)
    return (
        f"<h1>Welcome to {tenant}</h1>"
        f"<p>Hello {name},</p>"
        f"<p>An account has been created for you on the {tenant} support assistant.</p>"
        f"<p>Temporary password: <code>{html.escape(temp_password)}</code></p>"
        "<p>You will be asked to choose a new password when you first sign in.</p>"
        f'<p><a href="{html.escape(login_url)}">Sign in</a></p>'
    )


def password_reset_html(reset_url: str, expires_minutes: int) -> str:
    link = html.escape(reset_url)
    return (
        "<h2>Reset your password</h2>"
        "<p>You asked to reset your password. Follow the link below to choose a new one:</p>"
        f'<p><a href="{link}">Reset password</a></p>'
        f"<p>Or paste this URL into your browser: {link}</p>"
        f"<p>This link expires in {expires_minutes} minutes.</p>"
        "<p>If you did not request this, you can ignore this e-mail.</p>"
    )


class EmailService:

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def send(self, to: str, subject: str, body_html: str) -> bool:
        if not settings.RESEND_API_KEY:
            logger.warning("E-mail not sent: RESEND_API_KEY not configured", to=to)
            return False
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(
                    settings.RESEND_API_URL,
                    json={
                        "from": settings.EMAIL_FROM,
                        "to": [to],
                        "subject": subject,
                        "html": body_html,
                    },
                    headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            # Never let delivery failures break the triggering operation
            logger.warning("E-mail delivery failed (non-fatal)", to=to, error=str(exc))
            return False
        logger.info("E-mail sent", to=to, subject=subject)
        return True

    async def send_invitation(
        self, to: str, user_name: str, tenant_name: str, temp_password: str
    ) -> bool:
        return await self.send(
            to,
            f"Welcome to {tenant_name}",
            invitation_html(user_name, tenant_name, temp_password, settings.LOGIN_URL),
        )

    async def send_password_reset(self, to: str, token: str) -> bool:
        return await self.send(
            to,
            "Reset your password",
            password_reset_html(
                f"{settings.PASSWORD_RESET_URL}?token={token}",
                settings.PASSWORD_RESET_EXPIRE_MINUTES,
            ),
        )


email_service = EmailService()


def get_email_service() -> EmailService:
    return email_service
