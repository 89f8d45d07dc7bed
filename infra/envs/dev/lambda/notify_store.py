# file: infra/envs/dev/lambda/notify_store.py
"""
DynamoDB adapter for the notification engine.

Reads profiles and daily logs, writes notification records and their
idempotency guards. Profile attribute naming drift (wake_time / wakeTime /
wake_up_time) is resolved here so nothing downstream sees it.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from notify_models import DailyLogs, UserRoutineProfile

log = logging.getLogger(__name__)

GUARD_PREFIX = "guard#"
NOTIF_PREFIX = "notif#"

def _as_number(v, default):
    """Number-or-default; 0, blanks and junk fall back to `default`."""
    try:
        n = float(v)
    except (TypeError, ValueError, ArithmeticError):
        return default
    if not math.isfinite(n) or n == 0:
        return default
    return int(n) if n == int(n) else n

def _first(item: dict, *names):
    for n in names:
        v = item.get(n)
        if v is not None and str(v).strip():
            return v
    return None

def is_conditional_failure(e: Exception) -> bool:
    if isinstance(e, ClientError):
        return e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"
    return "ConditionalCheckFailed" in str(e)

# ----- Profile normalization -----
def normalize_profile(item: dict) -> UserRoutineProfile | None:
    user_id = str(item.get("id") or "").strip()
    if not user_id:
        return None
    name = (str(item.get("name") or "").strip() or "friend").split()[0]
    wake = str(_first(item, "wake_time", "wakeTime", "wake_up_time") or "07:00").strip()
    sleep = str(_first(item, "sleep_time", "sleepTime") or "23:00").strip()
    return UserRoutineProfile(
        user_id=user_id,
        display_name=name,
        weight_kg=_as_number(item.get("weight"), 70),
        target_daily_calories=_as_number(item.get("calories"), 2000),
        days_per_week_training=_as_number(item.get("days_per_week"), 3),
        workout_duration_minutes=_as_number(item.get("workout_duration"), 60),
        wake_time=wake,
        sleep_time=sleep,
        meals_per_day=int(_as_number(item.get("meals_per_day"), 4)),
    )

# ----- Store -----
class NotifyStore:
    def __init__(self, profiles, daily_water, completed_meals, workout_history, diet_journal, notifications):
        self.profiles = profiles
        self.daily_water = daily_water
        self.completed_meals = completed_meals
        self.workout_history = workout_history
        self.diet_journal = diet_journal
        self.notifications = notifications

    @classmethod
    def from_settings(cls, settings, ddb):
        return cls(
            profiles=ddb.Table(settings.profiles_table),
            daily_water=ddb.Table(settings.daily_water_table),
            completed_meals=ddb.Table(settings.completed_meals_table),
            workout_history=ddb.Table(settings.workout_history_table),
            diet_journal=ddb.Table(settings.diet_journal_table),
            notifications=ddb.Table(settings.notifications_table),
        )

    # -- profiles --
    def iter_profiles(self):
        """Yield every profile with a usable id (paginated scan)."""
        kwargs = {"FilterExpression": Attr("id").exists()}
        while True:
            resp = self.profiles.scan(**kwargs)
            for it in resp.get("Items", []):
                p = normalize_profile(it)
                if p is None:
                    log.warning("skipping profile row without id")
                    continue
                yield p
            last = resp.get("LastEvaluatedKey")
            if not last:
                break
            kwargs["ExclusiveStartKey"] = last

    def get_profile(self, user_id: str) -> UserRoutineProfile | None:
        item = self.profiles.get_item(Key={"id": user_id}).get("Item")
        return normalize_profile(item) if item else None

    # -- daily logs --
    def _query_day(self, tbl, user_id: str, day: str, **extra) -> list[dict]:
        kwargs = {"KeyConditionExpression": Key("user_id").eq(user_id) & Key("sk").begins_with(f"{day}#")}
        kwargs.update(extra)
        items = []
        while True:
            resp = tbl.query(**kwargs)
            items.extend(resp.get("Items", []))
            last = resp.get("LastEvaluatedKey")
            if not last or extra.get("Limit"):
                break
            kwargs["ExclusiveStartKey"] = last
        return items

    def load_day(self, user_id: str, day: str) -> DailyLogs:
        water = self.daily_water.get_item(Key={"user_id": user_id, "log_date": day}).get("Item") or {}
        meals = self._query_day(self.completed_meals, user_id, day)
        workouts = self._query_day(self.workout_history, user_id, day, Limit=1)
        diet = self._query_day(self.diet_journal, user_id, day)
        return DailyLogs(
            log_date=day,
            consumed_ml=int(_as_number(water.get("consumed_ml"), 0)),
            completed_meals=frozenset(str(it["meal_time"]) for it in meals if it.get("meal_time")),
            has_workout=len(workouts) > 0,
            calories_consumed=int(sum(_as_number(it.get("calorias"), 0) for it in diet)),
        )

    # -- notifications / guards --
    @staticmethod
    def guard_key(user_id: str, category: str, ref: str) -> dict:
        return {"user_id": user_id, "sk": f"{GUARD_PREFIX}{category}#{ref}"}

    def get_guard(self, user_id: str, category: str, ref: str) -> dict | None:
        r = self.notifications.get_item(Key=self.guard_key(user_id, category, ref), ConsistentRead=True)
        return r.get("Item")

    def claim_guard(self, user_id: str, category: str, ref: str, created_ms: int, since_ms: int, notification_id: str) -> bool:
        """
        Conditional put on the (user, category, ref) guard row.
        Succeeds if no guard exists or the existing one is older than `since_ms`.
        """
        item = {
            **self.guard_key(user_id, category, ref),
            "category": category, "ref": ref,
            "created_ms": Decimal(created_ms),
            "notification_id": notification_id,
        }
        try:
            self.notifications.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(sk) OR created_ms < :since",
                ExpressionAttributeValues={":since": Decimal(since_ms)},
            )
            return True
        except Exception as e:
            if is_conditional_failure(e):
                log.info(f"guard exists for {user_id} {category} {ref}; skip")
                return False
            raise

    def release_guard(self, user_id: str, category: str, ref: str, notification_id: str) -> None:
        try:
            self.notifications.delete_item(
                Key=self.guard_key(user_id, category, ref),
                ConditionExpression="notification_id = :nid",
                ExpressionAttributeValues={":nid": notification_id},
            )
        except Exception:
            log.exception(f"could not release guard {category} {ref} for {user_id}")

    def put_notification(self, draft, created_ms: int, notification_id: str | None = None) -> dict:
        nid = notification_id or uuid.uuid4().hex
        created_at = datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc).isoformat()
        item = {
            "user_id": draft.user_id,
            "sk": f"{NOTIF_PREFIX}{created_ms}#{nid}",
            "id": nid,
            "title": draft.title,
            "message": draft.message,
            "category": draft.category,
            "ref": draft.ref,
            "is_read": False,
            "created_at": created_at,
            "created_ms": Decimal(created_ms),
            "schema_version": 1,
        }
        self.notifications.put_item(Item=item)
        return item
