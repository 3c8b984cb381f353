import logging
import smtplib
import ssl
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from magicaltsutsunlist import config

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

RESET_SUBJECT = "Password Reset Request"


def render_reset_email(username: str, reset_link: str) -> tuple[str, str]:
    ctx = {
        "username": username,
        "reset_link": reset_link,
        "valid_minutes": int(config.RESET_TOKEN_MINUTES),
        "year": date.today().year,
    }
    html = templates.get_template("email/reset_password.html").render(ctx)
    text = templates.get_template("email/reset_password.txt").render(ctx)
    return text, html


def send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> bool:
    if config.EMAIL_TRANSPORT == "dummy":
        logger.info("Dummy mail to %s (%s):\n%s", to_email, subject, text_body)
        return True

    msg = MIMEMultipart("alternative")
    msg["From"] = config.SMTP_FROM or config.SMTP_USERNAME or ""
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as smtp:
            smtp.ehlo()
            if config.SMTP_USE_TLS:
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            if config.SMTP_USERNAME:
                smtp.login(config.SMTP_USERNAME, config.SMTP_PASSWORD or "")
            smtp.sendmail(msg["From"], [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Error sending mail to %s: %s", to_email, exc)
        return False
    return True


def send_reset_email(email: str, username: str, reset_link: str) -> bool:
    text, html = render_reset_email(username, reset_link)
    return send_email(email, RESET_SUBJECT, text, html)
