import smtplib
import uuid
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape
import os

from core.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, MAIL_FROM, APP_NAME, FRONTEND_ORIGIN, logger

# Jinja env
_templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)

EMAIL_BRAND_BUTTON_BG = os.getenv("EMAIL_BRAND_BUTTON_BG", "#111827")
EMAIL_BRAND_BUTTON_TEXT = os.getenv("EMAIL_BRAND_BUTTON_TEXT", "#ffffff")
EMAIL_BRAND_BG = os.getenv("EMAIL_BRAND_BG", "#f9fafb")


def render_email(template_name: str, **context) -> str:
    base = {
        "app_name": APP_NAME,
        "brand_bg": EMAIL_BRAND_BG,
        "button_bg": EMAIL_BRAND_BUTTON_BG,
        "button_text": EMAIL_BRAND_BUTTON_TEXT,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_addr: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    if not SMTP_HOST or not MAIL_FROM:
        logger.error("[email] SMTP not configured; cannot send email")
        return False
    try:
        sender = (from_addr or MAIL_FROM).strip()
        display_from = f"{APP_NAME} <{sender}>" if "<" not in sender else sender
        envelope_from = sender.split("<", 1)[1].rstrip(">").strip() if "<" in sender else sender
        domain = envelope_from.split("@")[-1] if "@" in envelope_from else "localhost"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = display_from
        msg["To"] = to_addr
        msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
        msg["Date"] = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S +0000")
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.attach(MIMEText(text or "Open this email in an HTML-capable email client.", "plain", _charset="utf-8"))
        msg.attach(MIMEText(html or "", "html", _charset="utf-8"))

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(envelope_from, [to_addr], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError) as ex:
        logger.exception(f"[email] SMTP send failed: {ex}")
        return False


def send_purchase_receipt(order) -> bool:
    """Email the buyer a receipt for a freshly paid order."""
    user = getattr(order, "user", None)
    to_addr = getattr(user, "email", None)
    if not to_addr:
        logger.warning(f"[email] order {order.id} has no buyer email; receipt skipped")
        return False
    data = order.to_dict()
    html = render_email(
        "purchase_receipt.html",
        order=data,
        buyer_name=getattr(user, "name", "") or "",
        order_url=f"{FRONTEND_ORIGIN}/order/{order.id}",
    )
    ok = send_email_smtp(to_addr, f"Order Confirmation {order.id}", html)
    if ok:
        logger.info(f"[email] receipt for order {order.id} sent to {to_addr}")
    return ok
