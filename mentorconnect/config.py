import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mentorconnect.db")
RABBIT_URL = os.getenv("RABBIT_URL")
EXCHANGE_NAME = os.getenv("EXCHANGE_NAME", "events_topic")

RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "10.0"))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", "30"))
ADMIN_TOKEN_TTL_HOURS = int(os.getenv("ADMIN_TOKEN_TTL_HOURS", "24"))
OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Business rules
DEFAULT_HOURLY_RATE = 500
DEFAULT_SESSION_MINUTES = 60
MIN_SLOT_MINUTES = 15
DEFAULT_TIMEZONE = "Asia/Kolkata"
MASTERCLASS_MAX_PARTICIPANTS = 5
MASTERCLASS_REQUIRED_SESSIONS = 5
PLATFORM_FEE_RATE = 0.10
GATEWAY_FEE_RATE = 0.02
WITHDRAWAL_FEE_RATE = 0.02
WITHDRAWAL_MIN_FEE = 10
CURRENCY = "INR"
