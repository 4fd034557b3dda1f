"""
Application configuration, read from the environment once at import time.
"""
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

# Auth settings
SECRET_KEY = os.getenv("SECRET_KEY", "secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "1") == "1"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Rate limits (requests per window, per client)
ORDER_RATE_LIMIT = int(os.getenv("ORDER_RATE_LIMIT", 10))
ORDER_RATE_WINDOW_SECONDS = int(os.getenv("ORDER_RATE_WINDOW_SECONDS", 60 * 60))
AUTH_RATE_LIMIT = int(os.getenv("AUTH_RATE_LIMIT", 20))
AUTH_RATE_WINDOW_SECONDS = int(os.getenv("AUTH_RATE_WINDOW_SECONDS", 15 * 60))

IDEMPOTENCY_WINDOW_MINUTES = int(os.getenv("IDEMPOTENCY_WINDOW_MINUTES", 60))

# Largest quantity a single cart line may request
MAX_LINE_QUANTITY = int(os.getenv("MAX_LINE_QUANTITY", 1000))

ORDER_NUMBER_PREFIX = "LX"

# Receipt emails
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
RECEIPT_FROM = os.getenv("RECEIPT_FROM", "Luxe Attire <onboarding@resend.dev>")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "GH₵")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
