from dotenv import load_dotenv
import os
from decimal import Decimal
from pathlib import Path

# Load environment variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

# Database configuration
DB_HOST = os.getenv("MYSQL_HOST", "db")
DB_USER = os.getenv("MYSQL_USER", "user")
DB_PASSWORD = os.getenv("MYSQL_PASSWORD", "123456")
DB_NAME = os.getenv("MYSQL_DB", "hostel_booking")
DB_PORT = os.getenv("MYSQL_PORT", "3306")

# JWT configuration (tokens are issued upstream, we only verify them)
SECRET_KEY = os.getenv("SECRET_KEY", "your_secret_key_here")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# Application configuration
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "")

# Currency configuration
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD").upper()
SUPPORTED_CURRENCIES = [
    c.strip().upper()
    for c in os.getenv("SUPPORTED_CURRENCIES", "USD,EUR,GBP,CAD,AUD").split(",")
    if c.strip()
]

# Pricing and fees
TAX_RATE_PERCENT = Decimal(os.getenv("TAX_RATE_PERCENT", "15"))
PLATFORM_FEE_PERCENT = Decimal(os.getenv("PLATFORM_FEE_PERCENT", "2.9"))
PLATFORM_FIXED_FEE = Decimal(os.getenv("PLATFORM_FIXED_FEE", "0.30"))
PROCESSING_FEE_PERCENT = Decimal(os.getenv("PROCESSING_FEE_PERCENT", "0"))

# Booking rules
MODIFICATION_WINDOW_HOURS = int(os.getenv("MODIFICATION_WINDOW_HOURS", "24"))
EARLY_CHECK_IN_DAYS = int(os.getenv("EARLY_CHECK_IN_DAYS", "1"))
MAX_BOOKING_NIGHTS = int(os.getenv("MAX_BOOKING_NIGHTS", "365"))
ROOM_LOCK_TIMEOUT_SECONDS = float(os.getenv("ROOM_LOCK_TIMEOUT_SECONDS", "5"))
REFERENCE_RETRY_ATTEMPTS = int(os.getenv("REFERENCE_RETRY_ATTEMPTS", "5"))

# Payment gateway configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

# Email configuration
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@hostel-booking.com")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "Hostel Reservations")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "1025"))
EMAIL_SERVER = os.getenv("EMAIL_SERVER", "mailhog")
NOTIFICATIONS_ENABLED = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"

# Database URL
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
