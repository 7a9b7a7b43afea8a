import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv("config.env")


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def _as_list(val: str | None, default: List[str]) -> List[str]:
    if not val:
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


# Public-facing slots used when a restaurant runs in "fixed" slot mode
DEFAULT_FIXED_SLOTS = [
    "11:00", "11:30", "12:00", "12:30", "13:00", "13:30", "14:00",  # Lunch
    "18:00", "18:30", "19:00", "19:30", "20:00", "20:30", "21:00", "21:30"  # Dinner
]


@dataclass
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./restaurant_booking.db")
    # Ignored for SQLite, which already serializes writers
    db_isolation_level: str = os.getenv("DB_ISOLATION_LEVEL", "SERIALIZABLE")
    fixed_time_slots: List[str] = field(
        default_factory=lambda: _as_list(os.getenv("FIXED_TIME_SLOTS"), DEFAULT_FIXED_SLOTS)
    )
    default_currency: str = os.getenv("DEFAULT_CURRENCY", "GHS")
    # Payments
    payment_charge_url: str | None = os.getenv("PAYMENT_CHARGE_URL")
    payment_api_key: str | None = os.getenv("PAYMENT_API_KEY")
    payment_timeout: int = int(os.getenv("PAYMENT_TIMEOUT", "10"))
    # Notifications
    notifications_enabled: bool = _as_bool(os.getenv("NOTIFICATIONS_ENABLED"), True)
    reminder_window_minutes: int = int(os.getenv("REMINDER_WINDOW_MINUTES", "120"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    seed_demo: bool = _as_bool(os.getenv("SEED_DEMO"), False)


settings = Settings()
