"""
Outgoing account e-mails (verification, password reset, welcome)

Without SMTP_HOST the links are only logged, which is how development runs.
Delivery problems are logged and reported as False; callers carry on.
"""
import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@test-yourself.com")
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")


def _deliver(recipient: str, subject: str, text: str, html: str) -> bool:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = FROM_EMAIL
    msg["To"] = recipient
    msg.set_content(text)
    msg.add_alternative(html, subtype="html")
    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if SMTP_USER:
                smtp.login(SMTP_USER, SMTP_PASS or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Error sending '%s' email to %s: %s", subject, recipient, e)
        return False
    logger.info("'%s' email sent to %s", subject, recipient)
    return True


def send(kind: str, recipient: str, subject: str, link: str, text: str, html: str) -> bool:
    if not SMTP_HOST:
        logger.info("[DEV] %s email for %s: %s", kind, recipient, link)
        return True
    return _deliver(recipient, subject, text, html)


def send_verification_email(email: str, name: str, token: str) -> bool:
    link = f"{CLIENT_URL}/verify-email?token={token}"
    text = (
        f"Hello {name}!\n\n"
        f"Thanks for signing up to Test Yourself. Confirm your email address here:\n{link}\n\n"
        "The link is valid for 24 hours. If you did not sign up, ignore this email."
    )
    html = (
        f"<h2>Hello {name}!</h2>"
        "<p>Thanks for signing up to Test Yourself. Confirm your email address:</p>"
        f'<p><a href="{link}">Verify email</a></p>'
        f'<p style="word-break: break-all; color: #666;">{link}</p>'
        "<p>The link is valid for 24 hours.</p>"
    )
    return send("verification", email, "Verify your email - Test Yourself", link, text, html)


def send_password_reset_email(email: str, name: str, token: str) -> bool:
    link = f"{CLIENT_URL}/reset-password?token={token}"
    text = (
        f"Hello {name}!\n\n"
        f"We received a request to reset your password. Choose a new one here:\n{link}\n\n"
        "The link is valid for 1 hour. If you did not ask for this, your account is safe."
    )
    html = (
        f"<h2>Hello {name}!</h2>"
        "<p>We received a request to reset your password.</p>"
        f'<p><a href="{link}">Reset password</a></p>'
        f'<p style="word-break: break-all; color: #666;">{link}</p>'
        "<p>The link is valid for 1 hour.</p>"
    )
    return send("password reset", email, "Password reset - Test Yourself", link, text, html)


def send_welcome_email(email: str, name: str) -> bool:
    text = (
        f"Welcome, {name}!\n\n"
        "Your email address is verified. You can now create quizzes, share them "
        f"with friends and follow your results at {CLIENT_URL}"
    )
    html = (
        f"<h2>Welcome, {name}!</h2>"
        "<p>Your email address is verified. You can now create quizzes, share them "
        "with friends and follow your results.</p>"
        f'<p><a href="{CLIENT_URL}">Get started</a></p>'
    )
    return send("welcome", email, "Welcome to Test Yourself!", CLIENT_URL, text, html)
