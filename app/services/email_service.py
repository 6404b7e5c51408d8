from datetime import datetime, timezone
import logging
import smtplib
from email.message import EmailMessage
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session
import uuid
import requests

from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.models.booking import Booking
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_ref: str = "") -> str:
    """Queue and attempt immediate send. Body is stored so the worker can retry on failure."""
    eid = str(uuid.uuid4())
    db.add(
        EmailLog(
            id=eid,
            to_email=to_email,
            subject=subject,
            body=body,
            status="queued",
            related_booking_ref=related_booking_ref,
        )
    )
    db.commit()

    try:
        send_email(to_email, subject, body)
        log = db.get(EmailLog, eid)
        if log:
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            db.commit()
    except Exception:
        logger.warning("email %s to %s failed; left for retry", eid, to_email, exc_info=True)
        log = db.get(EmailLog, eid)
        if log:
            log.status = "failed"
            db.commit()
        # Worker will retry via process_email_queue

    return eid


def send_email(to_email: str, subject: str, body: str):
    """Send email via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""

    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str):
    from_email = settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )
    if r.status_code >= 400:
        raise ExternalServiceError(f"SendGrid error {r.status_code}", details={"body": r.text[:500]})


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Process up to `limit` queued or failed emails; retry send and update status. Returns counts."""
    pending = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed = 0, 0
    for log in pending:
        try:
            send_email(log.to_email, log.subject, log.body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            sent += 1
        except Exception:
            logger.warning("retry of email %s failed", log.id, exc_info=True)
            log.status = "failed"
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}


def _local(dt: datetime) -> str:
    return dt.astimezone(ZoneInfo(settings.TIMEZONE)).strftime("%a %d %b %Y %H:%M")


def _recipients(booking: Booking) -> list[str]:
    out = []
    for e in [booking.contact_email, *(booking.booked_for_emails or [])]:
        if e and e.lower() not in out:
            out.append(e.lower())
    return out


class BookingNotifier:
    """Confirmation emails for booking lifecycle events."""

    def __init__(self, db: Session):
        self.db = db

    def _send(self, booking: Booking, subject: str, body: str) -> list[str]:
        ids = []
        for to in _recipients(booking):
            ids.append(queue_email(self.db, to, subject, body, related_booking_ref=booking.booking_ref))
        if not ids:
            logger.info("booking %s has no recipients; nothing sent", booking.booking_ref)
        return ids

    def booking_confirmed(self, booking: Booking) -> list[str]:
        body = (
            f"Your booking {booking.booking_ref} is confirmed.\n\n"
            f"Location: {booking.location}\n"
            f"From: {_local(booking.start_at)}\n"
            f"To: {_local(booking.end_at)}\n"
            f"Seats: {', '.join(booking.seat_numbers or [])}\n"
            f"Amount paid: {settings.CURRENCY} {booking.total_amount}\n"
        )
        return self._send(booking, f"Booking confirmed - {booking.booking_ref}", body)

    def reschedule_confirmed(self, booking: Booking) -> list[str]:
        body = (
            f"Your booking {booking.booking_ref} has been rescheduled.\n\n"
            f"New time: {_local(booking.start_at)} - {_local(booking.end_at)}\n"
            f"Seats: {', '.join(booking.seat_numbers or [])}\n"
        )
        return self._send(booking, f"Booking rescheduled - {booking.booking_ref}", body)

    def extension_confirmed(self, booking: Booking, amount) -> list[str]:
        body = (
            f"Your booking {booking.booking_ref} has been extended.\n\n"
            f"New end time: {_local(booking.end_at)}\n"
            f"Extension cost: {settings.CURRENCY} {amount}\n"
        )
        return self._send(booking, f"Booking extended - {booking.booking_ref}", body)
