import os
import logging
from decimal import Decimal
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _env_list(name: str, default: str, sep: str = ",") -> list[str]:
    raw = os.getenv(name) or default
    return [p.strip() for p in raw.split(sep) if p.strip()]


APP_NAME = os.getenv("APP_NAME", "Storefront")
FRONTEND_ORIGIN = (os.getenv("FRONTEND_ORIGIN", "").split(",")[0].strip() or "http://localhost:3000").rstrip("/")

# Identity (sessions are issued elsewhere; we only verify bearer tokens)
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "").strip()
AUTH_JWT_ISSUER = os.getenv("AUTH_JWT_ISSUER", "").strip()
ADMIN_EMAILS = [e.lower() for e in _env_list("ADMIN_EMAILS", "")]

# Pricing policy (flat, jurisdiction-free)
CURRENCY = (os.getenv("CURRENCY", "USD") or "USD").strip().upper()
SHIPPING_FLAT_FEE = Decimal(os.getenv("SHIPPING_FLAT_FEE", "10.00"))
FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "100.00"))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.10"))

# Checkout
PAYMENT_METHODS = _env_list("PAYMENT_METHODS", "PayPal,Card,CashOnDelivery")
DEFAULT_PAYMENT_METHOD = os.getenv("DEFAULT_PAYMENT_METHOD", "PayPal").strip()
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "12"))

# Payments (PayPal)
PAYPAL_API_URL = os.getenv("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com").rstrip("/")
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "").strip()
PAYPAL_APP_SECRET = os.getenv("PAYPAL_APP_SECRET", "").strip()

# Payments (Dodo, card processor)
DODO_API_BASE = os.getenv("DODO_API_BASE", "https://test.dodopayments.com").rstrip("/")
DODO_CHECKOUT_PATH = os.getenv("DODO_CHECKOUT_PATH", "/checkouts").strip()
if not DODO_CHECKOUT_PATH.startswith("/"):
    DODO_CHECKOUT_PATH = "/" + DODO_CHECKOUT_PATH
DODO_API_KEY = os.getenv("DODO_API_KEY") or os.getenv("DODO_PAYMENTS_API_KEY", "")
DODO_ADHOC_PRODUCT_ID = os.getenv("DODO_ADHOC_PRODUCT_ID", "").strip()
DODO_WEBHOOK_SECRET = (
    os.getenv("DODO_WEBHOOK_SECRET")
    or os.getenv("DODO_PAYMENTS_WEBHOOK_KEY")
    or ""
).strip()

PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "30"))

MAIL_FROM = os.getenv("MAIL_FROM", "Storefront <no-reply@your-domain.com>")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("storefront")
