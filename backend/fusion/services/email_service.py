# backend/fusion/services/email_service.py
"""
Email service for sending transactional emails.
Uses the Resend REST API.
"""

import logging
from collections.abc import Awaitable, Callable

import httpx

from fusion.core.config import settings
from fusion.core.log_utils import sanitize_for_log

logger = logging.getLogger(__name__)

# (to_email, subject, html_content, text_content) -> sent?
EmailSender = Callable[[str, str, str, str | None], Awaitable[bool]]


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: str | None = None,
) -> bool:
    """
    Send an email using the Resend API.

    Returns True if email was sent successfully, False otherwise.
    """
    safe_to = sanitize_for_log(to_email, 320)
    if not settings.RESEND_API_KEY:
        logger.warning(f"Resend not configured. Would have sent email to {safe_to}: {subject}")
        return False

    payload = {
        "from": settings.ADMIN_EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }
    if text_content:
        payload["text"] = text_content

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                settings.RESEND_API_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.error(f"Failed to send email to {safe_to}: {e}", exc_info=True)
        return False

    if response.is_success:
        logger.info(f"Email sent successfully to {safe_to}: {subject}")
        return True
    logger.error(
        f"Resend API error: {response.status_code} - {sanitize_for_log(response.text, 500)}"
    )
    return False


def render_admin_code_email(code: str) -> tuple[str, str]:
    """HTML and plain-text bodies for an admin login code."""
    ttl = settings.ADMIN_CODE_TTL_MINUTES

    html_content = f"""
    <html>
    <body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #f8f8f8; padding: 20px;">
        <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden;">
            <div style="background: linear-gradient(135deg, #1a4d2e 0%, #0d3b1f 100%); color: white; padding: 40px 20px; text-align: center;">
                <h1 style="margin: 0;">Admin Login</h1>
                <p>Fusion by Paperfrogs HQ</p>
            </div>
            <div style="padding: 40px; text-align: center;">
                <p style="font-size: 18px; margin-bottom: 10px;">Your verification code is:</p>
                <div style="font-size: 48px; font-weight: bold; letter-spacing: 8px; color: #1a4d2e;
                            background: #f0f8f4; padding: 20px; border-radius: 8px; margin: 30px 0;
                            font-family: 'Courier New', monospace;">{code}</div>
                <p style="color: #666; font-size: 14px;">
                    This code will expire in {ttl} minutes.<br>
                    If you didn't request this code, please ignore this email.
                </p>
            </div>
            <div style="background: #f5f5f5; padding: 20px; text-align: center; font-size: 14px; color: #666;">
                <p><strong>Paperfrogs HQ</strong></p>
                <p>Secure Admin Access</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_content = f"""
Admin Login - Fusion by Paperfrogs HQ

Your verification code is: {code}

This code will expire in {ttl} minutes.
If you didn't request this code, please ignore this email.
    """

    return html_content, text_content


async def send_admin_code_email(email: str, code: str, sender: EmailSender = send_email) -> bool:
    html_content, text_content = render_admin_code_email(code)
    return await sender(email, "Admin Login Verification Code", html_content, text_content)
