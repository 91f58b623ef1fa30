import smtplib
import requests
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from config import NotificationSettings

logger = logging.getLogger(__name__)

NOTIFY_STATUSES = ("succeeded", "permanently_failed", "unknown")


class Notifications:
    def __init__(self, settings: Optional[NotificationSettings] = None):
        settings = settings or NotificationSettings()
        self.slack_webhook_url = settings.slack_webhook_url
        email_config = settings.email
        self.email_enabled = email_config is not None

        if self.email_enabled:
            self.smtp_server = email_config.smtp_server
            self.smtp_port = email_config.smtp_port
            self.use_tls = email_config.use_tls
            self.username = email_config.username
            self.password = email_config.password
            self.sender = email_config.sender_email or self.username
            self.recipients = email_config.recipients

            logger.debug(
                f"Email Config - Server: {self.smtp_server}, Port: {self.smtp_port}, "
                f"Use TLS: {self.use_tls}, Username: {self.username}, Sender: {self.sender}, "
                f"Recipients: {self.recipients}"
            )

    def send_slack_message(self, message: str):
        """
        Send a message to Slack via a webhook URL.
        """
        if not self.slack_webhook_url:
            logger.debug("Slack webhook URL not configured. Skipping Slack notification.")
            return
        payload = {"text": message}
        try:
            response = requests.post(self.slack_webhook_url, json=payload, timeout=10)
            if response.status_code != 200:
                logger.error(f"Failed to send Slack message. Code: {response.status_code}, Resp: {response.text}")
            else:
                logger.info("Slack message sent successfully.")
        except requests.RequestException as e:
            logger.error(f"Exception while sending Slack message: {e}")

    def send_email(self, subject: str, plain_body: str, html_body: Optional[str] = None):
        """
        Email the configured recipients with both plain text and HTML content.
        """
        if not self.email_enabled:
            logger.debug("Email notifications not configured. Skipping Email notification.")
            return

        if not all([self.smtp_server, self.username, self.password, self.recipients]):
            logger.error("Email configuration is incomplete. Check config.yaml.")
            return

        msg = MIMEMultipart('alternative')
        msg['From'] = self.sender
        msg['To'] = ", ".join(self.recipients)
        msg['Subject'] = subject
        msg.attach(MIMEText(plain_body, 'plain'))
        if html_body:
            msg.attach(MIMEText(html_body, 'html'))

        smtp_class = smtplib.SMTP_SSL if self.smtp_port == 465 else smtplib.SMTP
        try:
            with smtp_class(self.smtp_server, self.smtp_port, timeout=10) as server:
                if smtp_class is smtplib.SMTP:
                    server.ehlo()
                    if self.use_tls:
                        server.starttls()
                        server.ehlo()
                server.login(self.username, self.password)
                server.send_message(msg)
            logger.info(f"Email sent successfully to {self.recipients} with subject '{subject}'.")
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP Authentication Error: {e}")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP Error: {e}")
        except OSError as e:
            logger.error(f"Could not reach SMTP server: {e}")

    def notify_sync_event(self, application: str, repository: str, ref: str, status: str, details: Optional[str] = ""):
        """
        Notify about a sync dispatch outcome (Slack + Email). Skips and supersedes are not notified.
        """
        if status not in NOTIFY_STATUSES:
            return

        label = status.replace("_", " ").capitalize()
        message = (
            f"🔄 Sync Trigger\n"
            f"Application: {application}\n"
            f"Repository: {repository}\n"
            f"Ref: {ref}\n"
            f"Status: {label}\n"
            f"Details: {details}"
        )
        self.send_slack_message(message)
        subject = f"Sync Trigger: {label} for {application}"
        html_message = f"""
        <html>
          <body>
            <h2>Sync Trigger - {label}</h2>
            <table border="1" style="border-collapse: collapse;">
              <tr><th>Application</th><td>{application}</td></tr>
              <tr><th>Repository</th><td>{repository}</td></tr>
              <tr><th>Ref</th><td>{ref}</td></tr>
              <tr><th>Status</th><td>{label}</td></tr>
              <tr><th>Details</th><td>{details}</td></tr>
            </table>
          </body>
        </html>
        """
        self.send_email(subject, message, html_message)
