# file: infra/envs/dev/lambda/notify_config.py
import json
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from botocore.config import Config

from notify_errors import ConfigurationError

# env var -> Settings attribute
REQUIRED_TABLES = {
    "PROFILES_TABLE":        "profiles_table",         # profiles
    "DAILY_WATER_TABLE":     "daily_water_table",      # daily_water
    "COMPLETED_MEALS_TABLE": "completed_meals_table",  # completed_meals
    "WORKOUT_HISTORY_TABLE": "workout_history_table",  # workout_history
    "DIET_JOURNAL_TABLE":    "diet_journal_table",     # diet_journal
    "NOTIFICATIONS_TABLE":   "notifications_table",    # notifications
}

@dataclass(frozen=True)
class Settings:
    profiles_table: str
    daily_water_table: str
    completed_meals_table: str
    workout_history_table: str
    diet_journal_table: str
    notifications_table: str
    tz: ZoneInfo
    cooldown_hours: float = 25
    user_timeout_s: float = 5
    batch_deadline_s: float = 50
    dry_run: bool = False
    cron_secret_name: str = ""
    cron_secret: str = ""

def _number(env, name: str, default: str) -> float:
    raw = env.get(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")

def load_settings(env=None) -> Settings:
    """Resolve settings from the environment; anything missing is a ConfigurationError."""
    env = os.environ if env is None else env
    missing = [k for k in REQUIRED_TABLES if not (env.get(k) or "").strip()]
    if missing:
        raise ConfigurationError(f"missing env: {', '.join(missing)}")

    tz_name = env.get("TZ_NAME", "America/Sao_Paulo")
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"unknown TZ_NAME {tz_name!r}")

    tables = {attr: env[k].strip() for k, attr in REQUIRED_TABLES.items()}
    return Settings(
        **tables,
        tz=tz,
        cooldown_hours=_number(env, "COOLDOWN_HOURS", "25"),
        user_timeout_s=_number(env, "USER_TIMEOUT_S", "5"),
        batch_deadline_s=_number(env, "BATCH_DEADLINE_S", "50"),
        dry_run=env.get("DRY_RUN", "0") == "1",
        cron_secret_name=env.get("CRON_SECRET_NAME", ""),
        cron_secret=env.get("CRON_SECRET", ""),
    )

def ddb_client_config(env=None) -> Config:
    """Short connect/read timeouts and at most two attempts per DynamoDB call."""
    env = os.environ if env is None else env
    try:
        timeout = float(env.get("DDB_TIMEOUT_S", "3"))
    except (TypeError, ValueError):
        timeout = 3.0
    return Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 2, "mode": "standard"})

def load_cron_secret(settings: Settings, secrets_client) -> str:
    """
    CRON_SECRET wins if set; otherwise read CRON_SECRET_NAME from Secrets Manager.
    The secret may be a raw string or JSON {"cron_secret": "..."}.
    """
    if settings.cron_secret:
        return settings.cron_secret
    if not settings.cron_secret_name:
        raise ConfigurationError("no CRON_SECRET or CRON_SECRET_NAME configured")
    try:
        sec = secrets_client.get_secret_value(SecretId=settings.cron_secret_name)["SecretString"]
    except Exception as e:
        raise ConfigurationError(f"cron secret unavailable: {e}")
    try:
        cfg = json.loads(sec)
    except ValueError:
        cfg = sec
    value = cfg.get("cron_secret", "") if isinstance(cfg, dict) else str(cfg)
    if not value:
        raise ConfigurationError(f"secret {settings.cron_secret_name} has no cron_secret")
    return value
