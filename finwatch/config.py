import os
from dotenv import load_dotenv

load_dotenv()

# --- API Keys (comma-separated for rotation) ---
GROQ_API_KEYS = [k.strip() for k in os.getenv("GROQ_API_KEYS", "").split(",") if k.strip()]
GEMINI_API_KEYS = [k.strip() for k in os.getenv("GEMINI_API_KEYS", "").split(",") if k.strip()]
OPENAI_API_KEYS = [k.strip() for k in os.getenv("OPENAI_API_KEYS", "").split(",") if k.strip()]

# --- Database ---
# Local SQLite unless Supabase is configured
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/finwatch.db")

# Fix for common SQLAlchemy issues with postgres:// vs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# --- Supabase Configuration ---
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# --- Auth ---
JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", os.getenv("JWT_SECRET", "change-this-secret-key"))
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")
CRON_SECRET = os.getenv("CRON_SECRET", "") or SUPABASE_SERVICE_ROLE_KEY

# --- Email ---
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
ALERT_EMAIL_FROM = os.getenv("ALERT_EMAIL_FROM", "alerts@finwatch.local")
DASHBOARD_URL = os.getenv("DASHBOARD_URL", "")

# --- Alerting ---
ALERT_COOLDOWN_HOURS = float(os.getenv("ALERT_COOLDOWN_HOURS", "24"))
CONTENT_TIMEOUT_SECONDS = float(os.getenv("CONTENT_TIMEOUT_SECONDS", "10"))
MAX_CONCURRENT_DISPATCHES = int(os.getenv("MAX_CONCURRENT_DISPATCHES", "5"))
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def is_supabase_configured() -> bool:
    """Check if Supabase is configured for backend (service role) access."""
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)
