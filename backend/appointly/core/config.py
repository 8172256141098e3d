import os

from dotenv import load_dotenv

load_dotenv()

APP_ENV = os.getenv("APP_ENV", "development")
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./appointly.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Public links (confirmation page, booking page)
PUBLIC_APP_URL = os.getenv("PUBLIC_APP_URL", "http://localhost:3000")

# Email (Resend)
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Appointly <noreply@appointly.app>")

# Twilio (SMS + WhatsApp)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")

# Used when a local phone number ("0171...") is turned into an international one
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "49")

# Maximum number of waitlist candidates proposed for one freed slot
WAITLIST_MATCH_LIMIT = int(os.getenv("WAITLIST_MATCH_LIMIT", 5))
