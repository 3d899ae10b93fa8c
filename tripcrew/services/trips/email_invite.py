import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from typing import Optional

from tripcrew.core.config import settings
from tripcrew.core.logger import logger


def generate_trip_link(trip_id: int) -> str:
    return f"{settings.FRONTEND_BASE_URL}/trips/{trip_id}"


def send_invite_email(invitee_email: str, trip_link: str, trip_name: Optional[str] = None,
                      inviter_name: Optional[str] = None) -> None:
    """
    Sends the invitation e-mail. Does nothing when SMTP is not configured;
    delivery failures are logged and never reach the caller.
    """
    if not settings.SMTP_HOST or not settings.SMTP_USER:
        logger.info(f"SMTP not configured, skipping invite e-mail to {invitee_email}")
        return

    sender_email = settings.SMTP_USER
    subject = f"You're invited to {trip_name or 'a trip'} on {settings.APP_NAME}"

    message = MIMEMultipart("alternative")
    message["From"] = formataddr((settings.APP_NAME, sender_email))
    message["To"] = invitee_email
    message["Subject"] = subject

    who = inviter_name or "A friend"
    html = f"""
    <html>
      <body>
        <p>Hey there,<br><br>
           {who} added you to {f"<b>{trip_name}</b>" if trip_name else "a trip"} on <strong>{settings.APP_NAME}</strong>.<br><br>
           Let the group know whether you're coming:<br><br>
           <a href="{trip_link}" style="padding: 10px 20px; background-color: #0984e3; color: white; text-decoration: none; border-radius: 5px;">Respond to invite</a>
           <br><br>
           Or paste this link into your browser:<br>
           <code>{trip_link}</code>
        </p>
      </body>
    </html>
    """
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.login(sender_email, settings.SMTP_PASSWORD or "")
            server.sendmail(sender_email, invitee_email, message.as_string())
            logger.info(f"Invite e-mail sent to {invitee_email}")
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send invite e-mail to {invitee_email}: {e}")
