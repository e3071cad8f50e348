"""Email sending via Resend API.

Plain-text transactional emails: magic links, organization invitations, and
invite one-time codes.

Delivery is fire-and-forget. Failures are logged and never reach the caller:
surfacing them would tell a requester whether an account exists.

- ResendMailer: posts each message to the Resend HTTP API.
- DeferredMailer: queues sends on FastAPI BackgroundTasks so the response
  returns before the provider round-trip.
"""

import logging
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx
from fastapi import BackgroundTasks

from guestgate.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class Mailer(Protocol):
    """Outbound email interface used by the services."""

    async def send_magic_link(
        self,
        *,
        to_email: str,
        token: str,
        full_name: str | None,
        is_new_user: bool,
    ) -> None: ...

    async def send_organization_invite(
        self,
        *,
        to_email: str,
        org_name: str,
        inviter_name: str,
        role: str,
    ) -> None: ...

    async def send_invite_otp(
        self,
        *,
        to_email: str,
        code: str,
        expires_minutes: int,
    ) -> None: ...


class ResendMailer:
    """Mailer that delivers through the Resend HTTP API.

    When RESEND_API_KEY is unset (local development) messages are skipped
    with an info log. Message bodies are never logged: they carry tokens.
    """

    async def _send(self, *, to_email: str, subject: str, text: str) -> None:
        api_key = settings.resend_api_key.get_secret_value()
        if not api_key:
            logger.info("Email delivery disabled; skipped %r", subject)
            return

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {api_key}"},
                    json={
                        "from": settings.email_from,
                        "to": to_email,
                        "subject": subject,
                        "text": text,
                    },
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning("Failed to send email %r", subject, exc_info=True)

    async def send_magic_link(
        self,
        *,
        to_email: str,
        token: str,
        full_name: str | None,
        is_new_user: bool,
    ) -> None:
        """Send a magic link sign-in email.

        The link points at the frontend, which posts the token to
        /auth/verify. Tokens travel in the query string only inside the email.

        Args:
            to_email: Recipient email address.
            token: Plain (unhashed) magic link token.
            full_name: Greeting name, if known.
            is_new_user: Selects the welcome wording.
        """
        params = urlencode({"token": token}, quote_via=quote)
        verify_url = f"{settings.frontend_url}/auth/verify?{params}"
        greeting = f"Hi {full_name}," if full_name else "Hi,"
        intro = (
            "Welcome! Click this link to finish creating your account:"
            if is_new_user
            else "Click this link to sign in:"
        )
        await self._send(
            to_email=to_email,
            subject="Your sign-in link",
            text=(
                f"{greeting}\n\n{intro}\n\n{verify_url}\n\n"
                f"This link expires in {settings.magic_link_ttl_minutes} minutes "
                "and can be used once. If you didn't request this, you can "
                "safely ignore this email."
            ),
        )

    async def send_organization_invite(
        self,
        *,
        to_email: str,
        org_name: str,
        inviter_name: str,
        role: str,
    ) -> None:
        """Send an organization membership invitation."""
        await self._send(
            to_email=to_email,
            subject=f"You've been invited to {org_name}",
            text=(
                f"{inviter_name} invited you to join {org_name} as {role}.\n\n"
                f"Sign in with this email address at {settings.frontend_url} "
                "to accept. The invitation expires in "
                f"{settings.organization_invitation_ttl_days} days."
            ),
        )

    async def send_invite_otp(
        self,
        *,
        to_email: str,
        code: str,
        expires_minutes: int,
    ) -> None:
        """Send a guest invite one-time code."""
        await self._send(
            to_email=to_email,
            subject="Your access code",
            text=(
                f"Your access code is {code}\n\n"
                f"It expires in {expires_minutes} minutes. If you didn't "
                "request this, you can safely ignore this email."
            ),
        )


class DeferredMailer:
    """Queues every send on BackgroundTasks instead of awaiting it.

    Args:
        mailer: Mailer that performs the actual delivery.
        background_tasks: Request-scoped task queue.
    """

    def __init__(self, mailer: Mailer, background_tasks: BackgroundTasks) -> None:
        self._mailer = mailer
        self._tasks = background_tasks

    async def send_magic_link(
        self,
        *,
        to_email: str,
        token: str,
        full_name: str | None,
        is_new_user: bool,
    ) -> None:
        self._tasks.add_task(
            self._mailer.send_magic_link,
            to_email=to_email,
            token=token,
            full_name=full_name,
            is_new_user=is_new_user,
        )

    async def send_organization_invite(
        self,
        *,
        to_email: str,
        org_name: str,
        inviter_name: str,
        role: str,
    ) -> None:
        self._tasks.add_task(
            self._mailer.send_organization_invite,
            to_email=to_email,
            org_name=org_name,
            inviter_name=inviter_name,
            role=role,
        )

    async def send_invite_otp(
        self,
        *,
        to_email: str,
        code: str,
        expires_minutes: int,
    ) -> None:
        self._tasks.add_task(
            self._mailer.send_invite_otp,
            to_email=to_email,
            code=code,
            expires_minutes=expires_minutes,
        )


resend_mailer = ResendMailer()
