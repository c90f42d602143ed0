"""Email notifications for new journal entries."""

import html
import logging
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate

import aiosmtplib

from ..config import EmailConfig
from ..entries.models import LogEntry
from ..errors import NotificationError

logger = logging.getLogger(__name__)

ENTRY_TEMPLATE = """
<h2>New Entry in Daily Logger</h2>
<p><strong>Date:</strong> {date}</p>
<p><strong>Title:</strong> {title}</p>
<p><strong>Category:</strong> {category}</p>
<p><strong>Understanding Level:</strong> {importance}/5 ({understanding})</p>
<p><strong>Content:</strong></p>
<div style="padding: 10px; background-color: #f5f5f5; border-left: 4px solid #007bff; margin: 10px 0;">
  {content}
</div>
<hr>
<p><small>This is an automated notification from your Daily Logger app.</small></p>
"""

TEST_TEMPLATE = """
<h2>Daily Logger - Email Test</h2>
<p>This is a test email from your Daily Logger application.</p>
<p>If you're receiving this email, your email notifications are configured correctly!</p>
<hr>
<p><small>This is an automated test from your Daily Logger app.</small></p>
"""


def format_entry_date(entry: LogEntry) -> str:
    """Long local-time date, e.g. "Monday, October 19, 2026 at 03:04 PM"."""
    return entry.timestamp.astimezone().strftime("%A, %B %d, %Y at %I:%M %p")


class EmailNotifier:
    """Builds and sends notification emails over SMTP."""

    def __init__(self, config: EmailConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        """True when notifications are switched on and have a recipient."""
        return bool(self.config.enabled and self.config.host and self.config.to)

    def _message(self, subject: str, html_body: str, text_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.sender or ""
        msg["To"] = self.config.to or ""
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = f"<{uuid.uuid4().hex}@daylog>"
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def build_entry_message(self, entry: LogEntry) -> MIMEMultipart:
        """Render the notification for one entry."""
        date = format_entry_date(entry)
        html_body = ENTRY_TEMPLATE.format(
            date=html.escape(date),
            title=html.escape(entry.title),
            category=html.escape(entry.category_name),
            importance=entry.importance,
            understanding=html.escape(entry.understanding),
            content=html.escape(entry.content).replace("\n", "<br>"),
        )
        text_body = (
            f"New Entry in Daily Logger\n\n"
            f"Date: {date}\n"
            f"Title: {entry.title}\n"
            f"Category: {entry.category_name}\n"
            f"Understanding Level: {entry.importance}/5\n\n"
            f"{entry.content}\n"
        )
        return self._message(f"New Daily Logger Entry: {entry.title}", html_body, text_body)

    def build_test_message(self) -> MIMEMultipart:
        return self._message(
            "Daily Logger - Test Email",
            TEST_TEMPLATE,
            "This is a test email from your Daily Logger application.\n",
        )

    async def _send(self, msg: MIMEMultipart) -> None:
        """Deliver a message.

        Raises:
            NotificationError: On any SMTP or connection failure.
        """
        smtp = aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            timeout=self.config.timeout_seconds,
            use_tls=self.config.secure,
            start_tls=not self.config.secure and self.config.port == 587,
        )
        try:
            await smtp.connect()
            if self.config.user and self.config.password:
                await smtp.login(self.config.user, self.config.password)
            await smtp.send_message(msg)
            await smtp.quit()
        except aiosmtplib.SMTPResponseException as e:
            raise NotificationError(f"{e.code} {e.message}") from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise NotificationError(str(e)) from e

    async def send_entry(self, entry: LogEntry) -> bool:
        """Send the notification for a new entry.

        Returns:
            True if the email was sent, False if disabled or it failed.
        """
        if not self.enabled:
            logger.debug("Email notifications are disabled")
            return False

        msg = self.build_entry_message(entry)
        try:
            await self._send(msg)
        except NotificationError as e:
            logger.error(f"Error sending email notification for {entry.id}: {e}")
            return False

        logger.info(f"Email notification sent: {msg['Message-ID']}")
        return True

    async def send_test(self) -> str:
        """Send a test email.

        Returns:
            The Message-ID of the sent email.

        Raises:
            NotificationError: If notifications are disabled or sending fails.
        """
        if not self.enabled:
            raise NotificationError("Email notifications are not configured or disabled")

        msg = self.build_test_message()
        await self._send(msg)
        logger.info(f"Test email sent: {msg['Message-ID']}")
        return msg["Message-ID"]
