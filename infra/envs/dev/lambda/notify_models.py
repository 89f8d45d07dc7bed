# file: infra/envs/dev/lambda/notify_models.py
from dataclasses import dataclass, field

from notify_time import parse_time_to_minutes

# Notification categories (stored in the `category` attribute)
WATER_LAG        = "water_lag"
MEAL_REMINDER    = "meal_reminder"
MEAL_PENDING     = "meal_pending"
WORKOUT_REMINDER = "workout_reminder"
DAILY_SUMMARY    = "daily_summary"

CATEGORIES = (WATER_LAG, MEAL_REMINDER, MEAL_PENDING, WORKOUT_REMINDER, DAILY_SUMMARY)

@dataclass(frozen=True)
class UserRoutineProfile:
    user_id: str
    display_name: str = "friend"
    weight_kg: float = 70
    target_daily_calories: int = 2000
    days_per_week_training: int = 3
    workout_duration_minutes: int = 60
    wake_time: str = "07:00"
    sleep_time: str = "23:00"
    meals_per_day: int = 4

    @property
    def wake_min(self) -> int:
        return parse_time_to_minutes(self.wake_time)

    @property
    def sleep_min(self) -> int:
        return parse_time_to_minutes(self.sleep_time)

@dataclass(frozen=True)
class DailyLogs:
    """Everything the triggers need about one user's calendar day."""
    log_date: str
    consumed_ml: int = 0
    completed_meals: frozenset = field(default_factory=frozenset)
    has_workout: bool = False
    calories_consumed: int = 0

@dataclass(frozen=True)
class NotificationDraft:
    user_id: str
    category: str
    ref: str
    title: str
    message: str

    def __post_init__(self):
        if self.category not in CATEGORIES:
            raise ValueError(f"unknown notification category {self.category!r}")

def water_ref(day: str) -> str:
    return f"water_{day}"

def meal_reminder_ref(meal_time: str, day: str) -> str:
    return f"meal_reminder_{meal_time}_{day}"

def meal_pending_ref(meal_time: str, day: str) -> str:
    return f"meal_pending_{meal_time}_{day}"

def workout_ref(day: str) -> str:
    return f"workout_{day}"

def daily_summary_ref(day: str) -> str:
    return f"daily_summary_{day}"
