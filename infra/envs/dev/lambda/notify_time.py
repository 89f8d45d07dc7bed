# file: infra/envs/dev/lambda/notify_time.py
import re
from datetime import datetime

MINUTES_PER_DAY = 24 * 60

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

def _leading_int(s: str) -> int | None:
    m = _LEADING_INT.match(s or "")
    return int(m.group(1)) if m else None

def parse_time_to_minutes(hhmm) -> int:
    """
    "HH:mm" (or "HH mm") -> minute of day.
    Anything missing or unparseable collapses to 0 instead of raising.
    """
    if not hhmm or not isinstance(hhmm, str):
        return 0
    parts = re.split(r"[:\s]", hhmm.strip())
    h = _leading_int(parts[0])
    if h is None or h < 0 or h > 23:
        return 0
    m = _leading_int(parts[1]) if len(parts) > 1 else 0
    total = h * 60 + (m or 0)
    return max(0, min(MINUTES_PER_DAY - 1, total))

def awake_window_minutes(wake_min: int, sleep_min: int) -> int:
    if wake_min <= sleep_min:
        window = sleep_min - wake_min
    else:
        # sleep past midnight
        window = MINUTES_PER_DAY - wake_min + sleep_min
    return max(0, window)

def minutes_since_wake(wake_min: int, sleep_min: int, now_min: int) -> int:
    # `now` is taken as same-day. With sleep < wake, a post-midnight `now`
    # reads as "not yet awake" and anything after wake as the full window.
    if wake_min <= now_min <= sleep_min:
        return now_min - wake_min
    if now_min < wake_min:
        return 0
    return awake_window_minutes(wake_min, sleep_min)

def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute

def format_hhmm(minutes: int) -> str:
    m = minutes % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}"

def circular_distance(a: int, b: int) -> int:
    """Distance in minutes between two clock times on the 24h dial."""
    d = abs(a - b) % MINUTES_PER_DAY
    return min(d, MINUTES_PER_DAY - d)
