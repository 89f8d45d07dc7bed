# file: infra/envs/dev/lambda/notify_guard.py
import logging
import uuid
from datetime import datetime, timedelta

from notify_models import NotificationDraft

log = logging.getLogger(__name__)

COOLDOWN_HOURS = 25

def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)

class DedupGuard:
    """
    Idempotency layer in front of the notifications table.

    (user_id, category, ref) may be recorded once per cooldown window. The
    lookup is a fast path; the conditional put on the guard row is what
    actually keeps overlapping runs from double-inserting.
    """

    def __init__(self, store, cooldown_hours: float = COOLDOWN_HOURS, dry_run: bool = False):
        self.store = store
        self.cooldown = timedelta(hours=cooldown_hours)
        self.dry_run = dry_run

    def _since_ms(self, now: datetime) -> int:
        return _ms(now - self.cooldown)

    def already_sent(self, user_id: str, category: str, ref: str, now: datetime) -> bool:
        guard = self.store.get_guard(user_id, category, ref)
        if not guard:
            return False
        return int(guard.get("created_ms", 0)) >= self._since_ms(now)

    def emit_once(self, draft: NotificationDraft, now: datetime) -> bool:
        """Record `draft` unless an equivalent one went out within the cooldown. True if recorded."""
        if self.already_sent(draft.user_id, draft.category, draft.ref, now):
            return False
        if self.dry_run:
            log.info(f"[TEST] Would send {draft.category} {draft.ref} to {draft.user_id}: {draft.title}")
            return False

        nid = uuid.uuid4().hex
        created_ms = _ms(now)
        if not self.store.claim_guard(draft.user_id, draft.category, draft.ref, created_ms, self._since_ms(now), nid):
            return False
        try:
            self.store.put_notification(draft, created_ms, notification_id=nid)
        except Exception:
            # leave the key free for the next run
            self.store.release_guard(draft.user_id, draft.category, draft.ref, nid)
            raise
        log.info(f"notification {nid} recorded: {draft.category} {draft.ref} for {draft.user_id}")
        return True
