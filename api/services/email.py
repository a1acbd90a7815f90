# SPDX-License-Identifier: Apache-2.0

"""
Outbound email over SMTP.
"""

import os
import ssl
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from opentelemetry import trace

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when a message cannot be handed to the SMTP server."""


class EmailService:
    """Sends HTML messages through an SMTP relay (implicit TLS on 465, STARTTLS otherwise)."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 sender: Optional[str] = None, sender_name: str = "Barangay Culiat"):
        self.host = host or os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.port = int(port or os.getenv("SMTP_PORT", "465"))
        self.username = username or os.getenv("SMTP_USERNAME", "")
        self.password = password or os.getenv("SMTP_PASSWORD", "")
        self.sender = sender or os.getenv("SMTP_SENDER") or self.username
        self.sender_name = sender_name

    def is_configured(self) -> bool:
        return bool(self.host and self.sender)

    def send(self, to_email: str, subject: str, html_content: str) -> None:
        """
        Send an HTML email.

        Raises:
            EmailDeliveryError: SMTP is not configured or delivery failed
        """
        if not self.is_configured():
            raise EmailDeliveryError("Email service is not configured")

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.sender_name, self.sender))
        message["To"] = to_email
        message.attach(MIMEText(html_content, "html"))

        with tracer.start_as_current_span("email.send") as span:
            span.set_attributes({"smtp.host": self.host, "smtp.port": self.port})
            try:
                if self.port == 465:
                    context = ssl.create_default_context()
                    with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=15) as server:
                        self._deliver(server, to_email, message)
                else:
                    with smtplib.SMTP(self.host, self.port, timeout=15) as server:
                        server.starttls(context=ssl.create_default_context())
                        self._deliver(server, to_email, message)
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"Failed to send email: {str(e)}", extra={"subject": subject})
                raise EmailDeliveryError(str(e))

        logger.info("Email sent", extra={"subject": subject})

    def _deliver(self, server: smtplib.SMTP, to_email: str, message: MIMEMultipart) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)
        server.sendmail(self.sender, to_email, message.as_string())

    def send_verification_code(self, to_email: str, code: str, purpose: str, name: Optional[str] = None) -> None:
        """Email a 6-digit profile verification code."""
        greeting = f"Hello {name}," if name else "Hello,"
        html = (
            f"<p>{greeting}</p>"
            f"<p>Your verification code to update your {purpose} is:</p>"
            f"<h2 style=\"letter-spacing: 4px;\">{code}</h2>"
            "<p>This code expires in 10 minutes. If you did not request this change, "
            "you can ignore this email.</p>"
            f"<p>{self.sender_name}</p>"
        )
        self.send(to_email, "Your verification code", html)

    def send_registration_result(self, to_email: str, approved: bool, name: Optional[str] = None,
                                 reason: Optional[str] = None) -> None:
        """Tell a resident whether their registration was approved."""
        greeting = f"Hello {name}," if name else "Hello,"
        if approved:
            body = "<p>Your registration has been approved. You can now log in.</p>"
            subject = "Registration approved"
        else:
            body = f"<p>Your registration was rejected. Reason: {reason or 'Not specified'}</p>"
            subject = "Registration rejected"
        self.send(to_email, subject, f"<p>{greeting}</p>{body}<p>{self.sender_name}</p>")

    def send_profile_verification_result(self, to_email: str, approved: bool, name: Optional[str] = None,
                                         reason: Optional[str] = None) -> None:
        """Tell a resident the outcome of their birth certificate review."""
        greeting = f"Hello {name}," if name else "Hello,"
        if approved:
            body = "<p>Your PSA birth certificate has been verified. Your profile is now complete.</p>"
            subject = "Profile verification approved"
        else:
            body = (
                f"<p>Your PSA birth certificate could not be verified. Reason: {reason or 'Not specified'}</p>"
                "<p>Please log in and submit your birth certificate again.</p>"
            )
            subject = "Profile verification rejected"
        self.send(to_email, subject, f"<p>{greeting}</p>{body}<p>{self.sender_name}</p>")

    def send_psa_reminder(self, to_email: str, days_left: int, reminder_type: str,
                          name: Optional[str] = None) -> None:
        """Remind a resident that their birth certificate deadline is coming up."""
        greeting = f"Hello {name}," if name else "Hello,"
        subject = "Final reminder: complete your profile" if reminder_type == "final" else "Complete your profile"
        html = (
            f"<p>{greeting}</p>"
            f"<p>You have {days_left} day{'s' if days_left != 1 else ''} left to submit your PSA birth "
            "certificate. Accounts without a verified birth certificate may be locked after the deadline.</p>"
            f"<p>{self.sender_name}</p>"
        )
        self.send(to_email, subject, html)
