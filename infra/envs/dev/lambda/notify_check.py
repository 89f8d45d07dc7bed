# file: infra/envs/dev/lambda/notify_check.py
# POST /notifications/check — run the notification triggers for the calling user.
import json, logging, boto3
from datetime import datetime
from botocore.exceptions import ClientError

from notify_config import ddb_client_config, load_settings
from notify_engine import NotifyEngine
from notify_errors import AuthError, ConfigurationError, PerUserError

log = logging.getLogger()
log.setLevel(logging.INFO)

idp = boto3.client("cognito-idp")
ddb = boto3.resource("dynamodb", config=ddb_client_config())

REJECTED_TOKEN_CODES = ("NotAuthorizedException", "UserNotFoundException", "InvalidParameterException")

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

def _method(event) -> str:
    return (event.get("requestContext", {}).get("http", {}).get("method")
            or event.get("httpMethod") or "").upper()

def _bearer_token(event) -> str:
    headers = {(k or "").lower(): v for k, v in (event.get("headers") or {}).items()}
    auth = (headers.get("authorization") or "").strip()
    if not auth.startswith("Bearer ") or not auth[7:].strip():
        raise AuthError("missing bearer token")
    return auth[7:].strip()

def _resolve_user_id(token: str) -> str:
    """Cognito access token -> user `sub`."""
    try:
        user = idp.get_user(AccessToken=token)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code in REJECTED_TOKEN_CODES:
            raise AuthError(f"token rejected ({code})")
        raise
    attrs = {a["Name"]: a["Value"] for a in user.get("UserAttributes", [])}
    user_id = attrs.get("sub") or user.get("Username")
    if not user_id:
        raise AuthError("token has no subject")
    return user_id

def lambda_handler(event, context):
    event = event or {}
    if _method(event) == "OPTIONS":
        return _resp({}, 204)

    try:
        user_id = _resolve_user_id(_bearer_token(event))
    except AuthError as e:
        log.warning(f"rejected check request: {e}")
        return _resp({"ok": False, "error": "unauthorized"}, 401)
    except Exception as e:
        log.exception("identity lookup failed")
        return _resp({"ok": False, "error": f"identity lookup failed: {e}"}, 502)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        log.error(f"configuration error: {e}")
        return _resp({"ok": False, "error": str(e)}, 500)

    engine = NotifyEngine.from_settings(settings, ddb)
    try:
        result = engine.check_single(user_id, _now(settings.tz))
    except PerUserError as e:
        log.error(json.dumps({"event": "notify.user_failed", "user_id": user_id, "error": type(e).__name__, "message": str(e)}))
        return _resp({"ok": False, "notificationsSent": e.sent, "error": str(e)}, 500)

    if result is None:
        return _resp({"ok": True, "notificationsSent": 0, "message": "Profile not found"})
    return _resp({"ok": True, "notificationsSent": result.sent,
                  "message": f"{result.sent} notification(s) sent"})
