import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Settings:
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./partstore.db"
    )
    database_echo: bool = _env_bool("DATABASE_ECHO", "False")
    database_pool_size: int = _env_int("DATABASE_POOL_SIZE", 10)

    # Ledger / alerting policy
    default_min_qty: int = _env_int("DEFAULT_MIN_QTY", 0)
    alert_throttle_minutes: int = _env_int("ALERT_THROTTLE_MINUTES", 30)
    auto_assign_fixed_location: bool = _env_bool("AUTO_ASSIGN_FIXED_LOCATION", "True")

    # Alert mail (alerts are only logged when user/pass are missing)
    alert_email: str = os.getenv("ALERT_EMAIL", "")
    smtp_host: str = os.getenv("SMTP_HOST", "smtp.office365.com")
    smtp_port: int = _env_int("SMTP_PORT", 587)
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_pass: str = os.getenv("SMTP_PASS", "")
    smtp_from: str = os.getenv("SMTP_FROM", "")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
