# file: infra/envs/dev/lambda/notify_worker.py
# Cron sweep: EventBridge schedule (every 15-30 min) or POST /notifications/run with X-Cron-Secret.
import os, json, hmac, logging, boto3
from datetime import datetime

from notify_config import ddb_client_config, load_cron_secret, load_settings
from notify_engine import NotifyEngine
from notify_errors import AuthError, ConfigurationError

log = logging.getLogger()
log.setLevel(logging.INFO)

secrets = boto3.client("secretsmanager")
ddb     = boto3.resource("dynamodb", config=ddb_client_config())

SAFETY_MARGIN_S = float(os.environ.get("SAFETY_MARGIN_S", "5"))

def _now(tz) -> datetime:
    return datetime.now(tz)

def _resp(o, code=200):
    return {
        "statusCode": code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "POST,OPTIONS",
            "Access-Control-Allow-Headers": "*",
        },
        "body": json.dumps(o, default=str),
    }

def _is_scheduled(event) -> bool:
    return event.get("source") == "aws.events" or event.get("detail-type") == "Scheduled Event"

def _method(event) -> str:
    return (event.get("requestContext", {}).get("http", {}).get("method")
            or event.get("httpMethod") or "").upper()

def _check_cron_secret(event, expected: str) -> None:
    headers = {(k or "").lower(): v for k, v in (event.get("headers") or {}).items()}
    got = headers.get("x-cron-secret") or ""
    if not got:
        auth = headers.get("authorization") or ""
        got = auth[7:] if auth.startswith("Bearer ") else ""
    if not got or not hmac.compare_digest(got.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("bad or missing cron secret")

def _deadline_s(settings, context) -> float:
    deadline = settings.batch_deadline_s
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    if callable(remaining):
        deadline = min(deadline, remaining() / 1000 - SAFETY_MARGIN_S)
    return max(0.0, deadline)

def lambda_handler(event, context):
    event = event or {}
    if _method(event) == "OPTIONS":
        return _resp({}, 204)

    try:
        settings = load_settings()
        if not _is_scheduled(event):
            _check_cron_secret(event, load_cron_secret(settings, secrets))
    except ConfigurationError as e:
        log.error(f"configuration error: {e}")
        return _resp({"ok": False, "error": str(e)}, 500)
    except AuthError as e:
        log.warning(f"rejected run request: {e}")
        return _resp({"ok": False, "error": "unauthorized"}, 401)

    engine = NotifyEngine.from_settings(settings, ddb)
    now = _now(settings.tz)
    try:
        result = engine.run_batch(now, _deadline_s(settings, context))
    except Exception as e:
        # profile scan itself failed; nothing was processed
        log.exception("batch run failed")
        return _resp({"ok": False, "error": str(e)}, 500)

    body = {"ok": True, **result.as_dict(),
            "message": f"Processed {result.processed} users, {result.sent} notifications sent"}
    return body if _is_scheduled(event) else _resp(body)
