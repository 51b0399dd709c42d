"""SMTP sender for seller support tickets."""
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from sellerdash.config import settings
from sellerdash.schemas import TicketRequest

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Ticket e-mail could not be sent (not configured or SMTP failure)."""


def build_ticket_message(ticket: TicketRequest, user_email: str, submitted_at: datetime) -> MIMEMultipart:
    """Assemble the ticket e-mail with HTML and plain-text parts."""
    subject = f"[Seller Dashboard] {ticket.subject} - {ticket.store_name}"
    timestamp = submitted_at.strftime("%A, %B %d, %Y %H:%M %Z").strip()

    asin_row = ""
    if ticket.asin:
        asin = escape(ticket.asin)
        asin_row = f"""
            <tr>
              <td style="padding:10px 0;border-bottom:1px solid #333;color:#9ca3af;">Related ASIN:</td>
              <td style="padding:10px 0;border-bottom:1px solid #333;">
                <a href="https://www.amazon.com/dp/{asin}" style="color:#F97316;">{asin}</a>
              </td>
            </tr>"""

    message_html = escape(ticket.message).replace("\n", "<br>")
    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">
      <div style="padding:30px;background-color:#1a1a1a;color:#ffffff;">
        <h2 style="color:#F97316;margin-top:0;">New Support Ticket</h2>
        <table style="width:100%;border-collapse:collapse;margin-bottom:20px;">
          <tr>
            <td style="padding:10px 0;border-bottom:1px solid #333;color:#9ca3af;">Subject:</td>
            <td style="padding:10px 0;border-bottom:1px solid #333;">{escape(ticket.subject)}</td>
          </tr>
          <tr>
            <td style="padding:10px 0;border-bottom:1px solid #333;color:#9ca3af;">Client:</td>
            <td style="padding:10px 0;border-bottom:1px solid #333;">{escape(ticket.store_name)}</td>
          </tr>
          <tr>
            <td style="padding:10px 0;border-bottom:1px solid #333;color:#9ca3af;">From:</td>
            <td style="padding:10px 0;border-bottom:1px solid #333;">{escape(user_email)}</td>
          </tr>{asin_row}
          <tr>
            <td style="padding:10px 0;border-bottom:1px solid #333;color:#9ca3af;">Submitted:</td>
            <td style="padding:10px 0;border-bottom:1px solid #333;">{escape(timestamp)}</td>
          </tr>
        </table>
        <h3 style="color:#F97316;margin-bottom:10px;">Message:</h3>
        <div style="background-color:#222222;padding:15px;border-radius:8px;">{message_html}</div>
      </div>
    </div>"""

    lines = [
        "New Support Ticket",
        "",
        f"Subject: {ticket.subject}",
        f"Client: {ticket.store_name}",
        f"From: {user_email}",
    ]
    if ticket.asin:
        lines.append(f"Related ASIN: {ticket.asin}")
    lines += [f"Submitted: {timestamp}", "", "Message:", ticket.message]
    text = "\n".join(lines)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.ticket_from_email or settings.smtp_user
    msg["To"] = ", ".join(settings.ticket_recipient_list)
    msg["Reply-To"] = user_email
    msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(html, "html"))
    return msg


def send_ticket_email(ticket: TicketRequest, user_email: str, submitted_at: datetime) -> int:
    """Send a support ticket to the configured recipients. Returns the recipient count."""
    recipients = settings.ticket_recipient_list
    if not settings.smtp_user or not recipients:
        raise EmailDeliveryError("Ticket e-mail is not configured")

    msg = build_ticket_message(ticket, user_email, submitted_at)
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.ehlo()
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(msg["From"], recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send ticket e-mail for %s: %s", ticket.store_name, exc)
        raise EmailDeliveryError(f"Failed to send email: {exc}") from exc
    logger.info("Ticket e-mail sent for %s from %s (%d recipients)", ticket.store_name, user_email, len(recipients))
    return len(recipients)
