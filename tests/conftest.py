from __future__ import annotations

import sys
import uuid
from datetime import datetime
from importlib import util
from pathlib import Path
from zoneinfo import ZoneInfo

import boto3
import pytest
from botocore.exceptions import ClientError

from notify_engine import NotifyEngine
from notify_guard import DedupGuard
from notify_models import DailyLogs, UserRoutineProfile
from notify_store import NotifyStore


REPO_ROOT = Path(__file__).resolve().parents[1]
LAMBDA_DIR = REPO_ROOT / "infra/envs/dev/lambda"
TZ = ZoneInfo("America/Sao_Paulo")


def at(hhmm: str, day: int = 1) -> datetime:
    h, m = map(int, hhmm.split(":"))
    return datetime(2024, 5, day, h, m, tzinfo=TZ)


def _conditional_failed(op: str) -> ClientError:
    return ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}}, op)


def _matches(cond, item: dict) -> bool:
    """Evaluate the boto3 Key/Attr conditions the store uses against a plain dict."""
    expr = cond.get_expression()
    op, vals = expr["operator"], expr["values"]
    if op == "AND":
        return all(_matches(v, item) for v in vals)
    if op == "=":
        return item.get(vals[0].name) == vals[1]
    if op == "begins_with":
        return str(item.get(vals[0].name, "")).startswith(vals[1])
    if op == "attribute_exists":
        return vals[0].name in item
    raise AssertionError(f"unsupported condition operator {op}")


class FakeTable:
    def __init__(self, name: str, hash_key: str, range_key: str | None = None, page_size: int = 100):
        self.name = name
        self.hash_key = hash_key
        self.range_key = range_key
        self.page_size = page_size
        self.items: dict = {}

    def _key(self, d: dict):
        return (d[self.hash_key], d.get(self.range_key) if self.range_key else None)

    def add(self, **item):
        self.items[self._key(item)] = dict(item)

    def get_item(self, Key, **kwargs):
        it = self.items.get(self._key(Key))
        return {"Item": dict(it)} if it else {}

    def _condition_ok(self, expr: str, existing, values: dict) -> bool:
        if expr == "attribute_not_exists(sk) OR created_ms < :since":
            return existing is None or existing.get("created_ms", 0) < values[":since"]
        if expr == "notification_id = :nid":
            return existing is not None and existing.get("notification_id") == values[":nid"]
        raise AssertionError(f"unsupported condition {expr}")

    def put_item(self, Item, ConditionExpression=None, ExpressionAttributeValues=None):
        k = self._key(Item)
        if ConditionExpression and not self._condition_ok(ConditionExpression, self.items.get(k), ExpressionAttributeValues or {}):
            raise _conditional_failed("PutItem")
        self.items[k] = dict(Item)
        return {}

    def delete_item(self, Key, ConditionExpression=None, ExpressionAttributeValues=None):
        k = self._key(Key)
        if ConditionExpression and not self._condition_ok(ConditionExpression, self.items.get(k), ExpressionAttributeValues or {}):
            raise _conditional_failed("DeleteItem")
        self.items.pop(k, None)
        return {}

    def _page(self, rows: list, start_key, limit):
        offset = (start_key or {}).get("_offset", 0)
        size = min(self.page_size, limit) if limit else self.page_size
        page = rows[offset:offset + size]
        resp = {"Items": [dict(r) for r in page]}
        if offset + size < len(rows):
            resp["LastEvaluatedKey"] = {"_offset": offset + size}
        return resp

    def query(self, KeyConditionExpression, Limit=None, ExclusiveStartKey=None, **kwargs):
        rows = [it for it in self.items.values() if _matches(KeyConditionExpression, it)]
        return self._page(rows, ExclusiveStartKey, Limit)

    def scan(self, FilterExpression=None, ExclusiveStartKey=None, **kwargs):
        # filter after paging, like DynamoDB
        resp = self._page(list(self.items.values()), ExclusiveStartKey, None)
        if FilterExpression is not None:
            resp["Items"] = [it for it in resp["Items"] if _matches(FilterExpression, it)]
        return resp


class FakeDynamoResource:
    def __init__(self, tables: dict[str, FakeTable]):
        self._by_name = {t.name: t for t in tables.values()}

    def Table(self, name: str):
        return self._by_name[name]


class _StubSecretsClient:
    def __init__(self):
        self._data: dict[str, str] = {}

    def add_secret(self, secret_id: str, secret_string: str) -> None:
        self._data[secret_id] = secret_string

    def get_secret_value(self, SecretId: str):
        if SecretId not in self._data:
            raise ClientError({"Error": {"Code": "ResourceNotFoundException", "Message": "not found"}}, "GetSecretValue")
        return {"SecretString": self._data[SecretId]}


class _StubCognitoClient:
    def __init__(self):
        self.tokens: dict[str, str] = {}

    def get_user(self, AccessToken: str):
        if AccessToken not in self.tokens:
            raise ClientError({"Error": {"Code": "NotAuthorizedException", "Message": "Invalid Access Token"}}, "GetUser")
        sub = self.tokens[AccessToken]
        return {"Username": f"user-{sub}", "UserAttributes": [{"Name": "sub", "Value": sub}]}


@pytest.fixture
def tables():
    return {
        "profiles": FakeTable("profiles_test", "id"),
        "daily_water": FakeTable("daily_water_test", "user_id", "log_date"),
        "completed_meals": FakeTable("completed_meals_test", "user_id", "sk"),
        "workout_history": FakeTable("workout_history_test", "user_id", "sk"),
        "diet_journal": FakeTable("diet_journal_test", "user_id", "sk"),
        "notifications": FakeTable("notifications_test", "user_id", "sk"),
    }


@pytest.fixture
def store(tables):
    return NotifyStore(**tables)


@pytest.fixture
def guard(store):
    return DedupGuard(store)


@pytest.fixture
def engine(store, guard):
    return NotifyEngine(store, guard)


@pytest.fixture
def profile():
    return UserRoutineProfile(
        user_id="u1", display_name="Ana", weight_kg=80, target_daily_calories=2000,
        days_per_week_training=5, workout_duration_minutes=60,
        wake_time="07:00", sleep_time="23:00", meals_per_day=4,
    )


@pytest.fixture
def empty_day():
    return DailyLogs(log_date="2024-05-01")


def records(tables, category: str | None = None) -> list[dict]:
    rows = [it for it in tables["notifications"].items.values() if str(it["sk"]).startswith("notif#")]
    if category:
        rows = [r for r in rows if r["category"] == category]
    return rows


@pytest.fixture
def stubs():
    return {"secrets": _StubSecretsClient(), "cognito": _StubCognitoClient()}


@pytest.fixture
def load_lambda(monkeypatch, tables, stubs):
    """Load a Lambda handler module with AWS clients stubbed and table env set."""

    env = {
        "PROFILES_TABLE": "profiles_test",
        "DAILY_WATER_TABLE": "daily_water_test",
        "COMPLETED_MEALS_TABLE": "completed_meals_test",
        "WORKOUT_HISTORY_TABLE": "workout_history_test",
        "DIET_JOURNAL_TABLE": "diet_journal_test",
        "NOTIFICATIONS_TABLE": "notifications_test",
        "TZ_NAME": "America/Sao_Paulo",
        "CRON_SECRET": "s3cret",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("CRON_SECRET_NAME", raising=False)
    monkeypatch.delenv("DRY_RUN", raising=False)

    clients = {"secretsmanager": stubs["secrets"], "cognito-idp": stubs["cognito"]}
    monkeypatch.setattr(boto3, "client", lambda service, **kwargs: clients.get(service, object()))
    monkeypatch.setattr(boto3, "resource", lambda service, **kwargs: FakeDynamoResource(tables) if service == "dynamodb" else object())

    loaded = []

    def _load(filename: str):
        module_name = f"{Path(filename).stem}_{uuid.uuid4().hex}"
        spec = util.spec_from_file_location(module_name, LAMBDA_DIR / filename)
        module = util.module_from_spec(spec)
        sys.modules[module_name] = module
        assert spec.loader is not None
        spec.loader.exec_module(module)
        loaded.append(module_name)
        return module

    yield _load

    for name in loaded:
        sys.modules.pop(name, None)
