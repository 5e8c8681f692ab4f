import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

CANCELLATION_NOTICE_HOURS = int(os.getenv("CANCELLATION_NOTICE_HOURS", "24"))
RESCHEDULE_NOTICE_HOURS = int(os.getenv("RESCHEDULE_NOTICE_HOURS", "24"))
COMPLETION_REQUIRES_START = _get_bool(os.getenv("COMPLETION_REQUIRES_START"), default=True)

# GET /availability keeps its fixed grid; the multi-day search takes the duration per request.
SINGLE_DAY_SLOT_MINUTES = int(os.getenv("SINGLE_DAY_SLOT_MINUTES", "30"))
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))
MIN_SLOT_DURATION_MINUTES = 5
MAX_SLOT_DURATION_MINUTES = 480
DEFAULT_MAX_SLOTS_PER_DAY = int(os.getenv("DEFAULT_MAX_SLOTS_PER_DAY", "10"))
MAX_SLOTS_PER_DAY_LIMIT = 50
NEXT_AVAILABLE_LIMIT = int(os.getenv("NEXT_AVAILABLE_LIMIT", "5"))

SAME_DAY_LEAD_MINUTES = int(os.getenv("SAME_DAY_LEAD_MINUTES", "30"))
LATE_DAY_CUTOFF_HOUR = int(os.getenv("LATE_DAY_CUTOFF_HOUR", "18"))
HORIZON_MAX_WORKERS = int(os.getenv("HORIZON_MAX_WORKERS", "1"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if HORIZON_MAX_WORKERS < 1:
        raise RuntimeError("HORIZON_MAX_WORKERS must be at least 1.")
