# file: infra/envs/dev/lambda/notify_pace.py
import math

from notify_time import (
    MINUTES_PER_DAY,
    awake_window_minutes,
    format_hhmm,
    minutes_since_wake,
)

ML_PER_KG_BASE = 35
GLASS_ML = 250
DEFAULT_GOAL_ML = 2000
DEFAULT_MEALS_PER_DAY = 4
MAX_MEALS_PER_DAY = 6

def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))

# ----- Hydration -----
def activity_level(days_per_week, workout_duration_min) -> str:
    days = days_per_week or 0
    duration = workout_duration_min or 0
    if days >= 5 or (days >= 4 and duration >= 45): return "high"
    if days >= 3 or duration >= 30: return "medium"
    return "low"

def hydration_goal_ml(weight_kg, days_per_week, workout_duration_min) -> int:
    """
    Daily water goal: 35 ml/kg, +20% for high activity, +10% for medium.
    Rounded to whole 250 ml glasses.
    """
    try:
        weight = float(weight_kg)
    except (TypeError, ValueError):
        return DEFAULT_GOAL_ML
    if not math.isfinite(weight) or weight <= 0:
        return DEFAULT_GOAL_ML

    base_ml = weight * ML_PER_KG_BASE
    level = activity_level(days_per_week, workout_duration_min)
    if level == "high":
        base_ml *= 1.2
    elif level == "medium":
        base_ml *= 1.1
    return max(GLASS_ML, round_half_up(base_ml / GLASS_ML) * GLASS_ML)

def ideal_hydration_so_far_ml(goal_ml: int, wake_min: int, sleep_min: int, now_min: int) -> int:
    """How much of `goal_ml` should be in by `now_min`, pro rata over the awake window."""
    window = awake_window_minutes(wake_min, sleep_min)
    if window <= 0:
        return 0
    elapsed = minutes_since_wake(wake_min, sleep_min, now_min)
    ideal = goal_ml * elapsed / window
    return round_half_up(max(0, min(goal_ml, ideal)))

# ----- Meals -----
def clamp_meals_per_day(n) -> int:
    try:
        n = int(n or DEFAULT_MEALS_PER_DAY)
    except (TypeError, ValueError):
        n = DEFAULT_MEALS_PER_DAY
    return max(1, min(MAX_MEALS_PER_DAY, n))

def derive_meal_times(wake_min: int, sleep_min: int, meals_per_day) -> list[str]:
    """
    Spread N meals evenly across the awake window, each at the middle of its slot.
    Sorted by clock time, so a meal that lands after midnight sorts first.
    """
    if sleep_min <= wake_min:
        sleep_min += MINUTES_PER_DAY
    n = clamp_meals_per_day(meals_per_day)
    interval = (sleep_min - wake_min) / n
    times = []
    for i in range(n):
        m = wake_min + round_half_up(interval * (i + 0.5))
        times.append(format_hhmm(m))
    return sorted(times)
