"""
Email background tasks.

Invite emails for email-targeted team and organization invites.
"""

import logging

from voltedge.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def build_invite_email(
    scope: str,
    scope_name: str,
    role: str,
    invite_code: str,
    frontend_url: str,
    expires_in_days: int,
) -> tuple[str, str]:
    """Return (subject, html) for an invite email."""
    invite_url = f"{frontend_url.rstrip('/')}/invite/{invite_code}"
    subject = f"You've been invited to join {scope_name} on VoltEdge"
    html = f"""
        <h2>You've been invited to VoltEdge</h2>
        <p>You have been invited to join the {scope} <strong>{scope_name}</strong>
        as <strong>{role.replace('_', ' ')}</strong>.</p>
        <p>
            <a href="{invite_url}"
               style="background:#f59e0b;color:#111;padding:12px 24px;
                      border-radius:6px;text-decoration:none;display:inline-block;">
                Accept Invitation
            </a>
        </p>
        <p>Or enter this code after signing in: <strong>{invite_code}</strong></p>
        <p>This invitation expires in {expires_in_days} days and can be used once.</p>
        <p>If you did not expect this invitation, you can safely ignore this email.</p>
    """
    return subject, html


@celery_app.task(name="voltedge.workers.email_tasks.send_invite_email", bind=True, max_retries=3)
def send_invite_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    scope: str,
    scope_name: str,
    role: str,
    invite_code: str,
    frontend_url: str,
    expires_in_days: int = 7,
) -> dict[str, str]:
    """
    Send an invite email via Resend.

    Args:
        to_email: The only address allowed to redeem the invite.
        scope: "team" or "organization".
        scope_name: Display name of the team or organization.
        role: Role granted on redemption.
        invite_code: 8-character invite code.
        frontend_url: Frontend base URL for the landing link.
        expires_in_days: Invite lifetime shown in the email.

    Returns:
        Dict with status and message_id.
    """
    try:
        import resend

        from voltedge.core.config import settings

        resend.api_key = settings.RESEND_API_KEY

        subject, html = build_invite_email(
            scope, scope_name, role, invite_code, frontend_url, expires_in_days
        )
        params: resend.Emails.SendParams = {
            "from": settings.EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }

        response = resend.Emails.send(params)
        return {"status": "sent", "message_id": response["id"]}

    except Exception as exc:
        logger.warning("Invite email to %s failed (attempt %s)", to_email, self.request.retries + 1)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
