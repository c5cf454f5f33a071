# backend/gasbook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gasbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gasbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "Today" for delivery-date validation is the business's local date
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Kolkata")

    # Catalogue
    CYLINDER_TYPES = ("14.2kg", "5kg", "19kg")
    CYLINDER_PRICES = {
        "14.2kg": 1150,
        "5kg": 1150,
        "19kg": 1150,
    }
    SERVICE_FEES = {
        "No": 0,
        "Pickup": 50,
        "Drop": 50,
        "Pickup+Drop": 70,
    }

    # Retention
    BOOKING_RETENTION_HOURS = 20
    LENDING_RETENTION_DAYS = 28
    BOOKING_SWEEP_INTERVAL_MINUTES = 5
    LENDING_SWEEP_HOUR = 2

    PAYMENT_HISTORY_LIMIT = 30

    # Background retention timers (APScheduler)
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED")
