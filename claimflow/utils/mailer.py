"""
Outgoing mail.

Messages are built with ``email.message.EmailMessage`` and handed to
``deliver``. With no SMTP_HOST configured, delivery only logs the message,
which keeps local development and tests off the network.
"""

import smtplib
from email.message import EmailMessage

from claimflow import config
from claimflow.logging_config import get_logger

logger = get_logger(__name__)


def build_message(to: str, subject: str, html: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f'"{config.APP_NAME}" <{config.MAIL_FROM}>'
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html, subtype="html")
    return message


def deliver(message: EmailMessage) -> None:
    """Send a message through the configured SMTP server."""
    if not config.SMTP_HOST:
        logger.info(f"SMTP not configured - email to {message['To']} not sent: {message['Subject']}")
        return
    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USER:
            smtp.login(config.SMTP_USER, config.SMTP_PASSWORD)
        smtp.send_message(message)
    logger.info(f"Email sent to {message['To']}: {message['Subject']}")


def send_temporary_password(email: str, password: str) -> None:
    html = f"""
        <h1>Welcome!</h1>
        <p>Your {config.APP_NAME} account has been created successfully.</p>
        <p>Your temporary password is: <strong>{password}</strong></p>
        <p>Please log in and change your password immediately.</p>
    """
    deliver(build_message(email, "Your Account Details", html))


def send_password_reset(email: str, token: str) -> None:
    reset_url = f"{config.FRONTEND_URL}/reset-password?token={token}"
    html = f"""
        <h1>Password Reset</h1>
        <p>You requested a password reset for your account.</p>
        <p><a href="{reset_url}">Reset Password</a></p>
        <p>If you didn't request this, please ignore this email.</p>
        <p>This link will expire in {config.RESET_TOKEN_EXPIRE_MINUTES} minutes.</p>
    """
    deliver(build_message(email, "Password Reset Request", html))


def send_approval_reminder(email: str, approval) -> None:
    expense = approval.expense
    html = f"""
        <h1>Approval overdue</h1>
        <p>The expense <strong>{expense.subject}</strong> ({expense.formatted_amount})
        has been waiting for your review since {approval.created_at:%Y-%m-%d}.</p>
        <p>It was due on {approval.due_date:%Y-%m-%d %H:%M} UTC.</p>
        <p><a href="{config.FRONTEND_URL}/approvals">Review pending approvals</a></p>
    """
    deliver(build_message(email, f"Reminder: approval #{approval.id} is overdue", html))
