# file: infra/envs/dev/lambda/notify_triggers.py
"""
Pure trigger functions shared by the cron sweep and the on-demand check.

Every trigger takes (profile, logs, now) and returns a list of drafts; an
empty list means "nothing to send". `now` is always passed in, never read
from the clock here.
"""
import logging
from datetime import datetime

from notify_errors import TriggerComputationError
from notify_models import (
    DAILY_SUMMARY, MEAL_PENDING, MEAL_REMINDER, WATER_LAG, WORKOUT_REMINDER,
    DailyLogs, NotificationDraft, UserRoutineProfile,
    daily_summary_ref, meal_pending_ref, meal_reminder_ref, water_ref, workout_ref,
)
from notify_pace import derive_meal_times, hydration_goal_ml, ideal_hydration_so_far_ml, round_half_up
from notify_time import MINUTES_PER_DAY, circular_distance, minute_of_day, parse_time_to_minutes

log = logging.getLogger(__name__)

WATER_LAG_TOLERANCE_ML = 500     # two glasses behind pace
MEAL_UPCOMING_MIN      = 15
MEAL_PENDING_FROM_MIN  = 30
MEAL_PENDING_UNTIL_MIN = 120
WORKOUT_CUTOFF_HOUR    = 20
SUMMARY_LEAD_MIN       = 30      # summary is centred this long before sleep
SUMMARY_HALF_WINDOW    = 30

def _today(now: datetime) -> str:
    return now.date().isoformat()

def _pct(part, whole) -> int:
    if not whole or whole <= 0:
        return 0
    return round_half_up(part / whole * 100)

def goal_for(profile: UserRoutineProfile) -> int:
    return hydration_goal_ml(profile.weight_kg, profile.days_per_week_training, profile.workout_duration_minutes)

# ----- Triggers -----
def hydration_lag(profile: UserRoutineProfile, logs: DailyLogs, now: datetime) -> list[NotificationDraft]:
    goal = goal_for(profile)
    ideal = ideal_hydration_so_far_ml(goal, profile.wake_min, profile.sleep_min, minute_of_day(now))
    consumed = logs.consumed_ml
    if ideal <= 0 or consumed >= ideal - WATER_LAG_TOLERANCE_ML:
        return []
    deficit = ideal - consumed
    return [NotificationDraft(
        user_id=profile.user_id,
        category=WATER_LAG,
        ref=water_ref(_today(now)),
        title=f"Hydration check, {profile.display_name}! 💧",
        message=f"You are {deficit} ml behind your ideal pace. Drink some water to keep your energy up.",
    )]

def meal_upcoming(profile: UserRoutineProfile, logs: DailyLogs, now: datetime) -> list[NotificationDraft]:
    now_min = minute_of_day(now)
    day = _today(now)
    out = []
    for mt in derive_meal_times(profile.wake_min, profile.sleep_min, profile.meals_per_day):
        until = parse_time_to_minutes(mt) - now_min
        if 0 < until <= MEAL_UPCOMING_MIN:
            out.append(NotificationDraft(
                user_id=profile.user_id,
                category=MEAL_REMINDER,
                ref=meal_reminder_ref(mt, day),
                title=f"Meal coming up, {profile.display_name}! 🍽️",
                message=f"In {until} min: your {mt} meal. Get your plate ready.",
            ))
    return out

def meal_pending(profile: UserRoutineProfile, logs: DailyLogs, now: datetime) -> list[NotificationDraft]:
    now_min = minute_of_day(now)
    day = _today(now)
    out = []
    for mt in derive_meal_times(profile.wake_min, profile.sleep_min, profile.meals_per_day):
        since = now_min - parse_time_to_minutes(mt)
        if MEAL_PENDING_FROM_MIN <= since < MEAL_PENDING_UNTIL_MIN and mt not in logs.completed_meals:
            out.append(NotificationDraft(
                user_id=profile.user_id,
                category=MEAL_PENDING,
                ref=meal_pending_ref(mt, day),
                title=f"Meal pending, {profile.display_name} ⏰",
                message=f"Your {mt} meal was {since} min ago. Log it when you eat to keep your goals on track.",
            ))
    return out

def workout_missed(profile: UserRoutineProfile, logs: DailyLogs, now: datetime) -> list[NotificationDraft]:
    if now.hour < WORKOUT_CUTOFF_HOUR or logs.has_workout:
        return []
    return [NotificationDraft(
        user_id=profile.user_id,
        category=WORKOUT_REMINDER,
        ref=workout_ref(_today(now)),
        title=f"Time to train, {profile.display_name}! 💪",
        message="The day is almost over and no exercise is logged yet. How about a quick set? Every rep counts!",
    )]

def summary_tip(water_pct: int, diet_pct: int) -> str:
    if water_pct < 80:
        return "Tomorrow, spread more water across the day."
    if diet_pct < 70:
        return "Try to get closer to your calorie target tomorrow."
    if water_pct >= 90 and diet_pct >= 90:
        return "Excellent day! Keep the same rhythm tomorrow."
    return "Keep it up tomorrow!"

def daily_summary(profile: UserRoutineProfile, logs: DailyLogs, now: datetime) -> list[NotificationDraft]:
    centre = (profile.sleep_min - SUMMARY_LEAD_MIN + MINUTES_PER_DAY) % MINUTES_PER_DAY
    if circular_distance(minute_of_day(now), centre) >= SUMMARY_HALF_WINDOW:
        return []
    water_pct = _pct(logs.consumed_ml, goal_for(profile))
    diet_pct = _pct(logs.calories_consumed, profile.target_daily_calories)
    return [NotificationDraft(
        user_id=profile.user_id,
        category=DAILY_SUMMARY,
        ref=daily_summary_ref(_today(now)),
        title=f"Your day in review, {profile.display_name} 📊",
        message=f"Water: {water_pct}% | Diet: {diet_pct}% of target. {summary_tip(water_pct, diet_pct)}",
    )]

TRIGGERS = (
    ("hydration_lag", hydration_lag),
    ("meal_upcoming", meal_upcoming),
    ("meal_pending", meal_pending),
    ("workout_missed", workout_missed),
    ("daily_summary", daily_summary),
)

def evaluate_all(profile: UserRoutineProfile, logs: DailyLogs, now: datetime):
    """
    Run every trigger independently.
    Returns [(trigger_name, drafts_or_TriggerComputationError), ...] in a fixed order.
    """
    outcomes = []
    for name, fn in TRIGGERS:
        try:
            outcomes.append((name, fn(profile, logs, now)))
        except Exception as e:
            log.exception(f"trigger {name} failed for {profile.user_id}")
            outcomes.append((name, TriggerComputationError(name, e)))
    return outcomes
