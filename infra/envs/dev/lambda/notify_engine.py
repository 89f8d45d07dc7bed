# file: infra/envs/dev/lambda/notify_engine.py
"""
Per-user orchestrator and batch runner.

Both the cron sweep (run_batch) and the on-demand check (check_single) go
through check_profile.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

from notify_errors import PerUserError, TriggerComputationError
from notify_guard import DedupGuard
from notify_models import UserRoutineProfile
from notify_store import NotifyStore
from notify_triggers import evaluate_all

log = logging.getLogger(__name__)

@dataclass
class UserResult:
    user_id: str
    sent: int = 0
    failed_triggers: list = field(default_factory=list)

@dataclass
class BatchResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    deferred: int = 0

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "notificationsSent": self.sent,
            "failed": self.failed,
            "deferred": self.deferred,
        }

class _Budget:
    def __init__(self, user_id: str, limit_s: float, clock):
        self.user_id = user_id
        self.limit_s = limit_s
        self.clock = clock
        self.started = clock()

    def check(self, step: str, sent: int = 0) -> None:
        spent = self.clock() - self.started
        if spent > self.limit_s:
            raise PerUserError(self.user_id, f"time budget {self.limit_s}s exceeded at {step} ({spent:.2f}s)", sent=sent)

class NotifyEngine:
    def __init__(self, store, guard, user_timeout_s: float = 5, clock=time.monotonic):
        self.store = store
        self.guard = guard
        self.user_timeout_s = user_timeout_s
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, ddb):
        store = NotifyStore.from_settings(settings, ddb)
        guard = DedupGuard(store, cooldown_hours=settings.cooldown_hours, dry_run=settings.dry_run)
        return cls(store, guard, user_timeout_s=settings.user_timeout_s)

    def check_profile(self, profile: UserRoutineProfile, now: datetime) -> UserResult:
        """
        Evaluate every trigger for one user and record whatever fires.

        A trigger that fails to compute is skipped and listed in
        `failed_triggers`. A failed guard or record write does not stop the
        remaining triggers, but once they have run it is raised as
        PerUserError, as are store reads and a blown time budget.
        """
        uid = profile.user_id
        budget = _Budget(uid, self.user_timeout_s, self.clock)
        result = UserResult(user_id=uid)

        try:
            logs = self.store.load_day(uid, now.date().isoformat())
        except Exception as e:
            raise PerUserError(uid, f"daily logs unavailable: {e}") from e
        budget.check("load_day")

        write_errors = []
        for name, outcome in evaluate_all(profile, logs, now):
            if isinstance(outcome, TriggerComputationError):
                result.failed_triggers.append(name)
                continue
            for draft in outcome:
                budget.check(name, sent=result.sent)
                try:
                    if self.guard.emit_once(draft, now):
                        result.sent += 1
                except Exception as e:
                    log.exception(f"emit failed for {uid} {draft.category} {draft.ref}")
                    write_errors.append((name, e))
        if write_errors:
            names = ", ".join(n for n, _ in write_errors)
            raise PerUserError(uid, f"notification write failed ({names}): {write_errors[0][1]}",
                               sent=result.sent) from write_errors[0][1]
        return result

    def check_single(self, user_id: str, now: datetime) -> UserResult | None:
        """On-demand path. None when the user has no profile."""
        try:
            profile = self.store.get_profile(user_id)
        except Exception as e:
            raise PerUserError(user_id, f"profile unavailable: {e}") from e
        if profile is None:
            return None
        return self.check_profile(profile, now)

    def run_batch(self, now: datetime, deadline_s: float) -> BatchResult:
        """
        Cron path: sweep every profile, one user at a time.
        Per-user failures are logged and skipped; once `deadline_s` has passed
        the remaining users are only counted as deferred.
        """
        started = self.clock()
        out = BatchResult()
        for profile in self.store.iter_profiles():
            if self.clock() - started >= deadline_s:
                out.deferred += 1
                continue
            out.processed += 1
            try:
                r = self.check_profile(profile, now)
            except Exception as e:
                out.failed += 1
                out.sent += getattr(e, "sent", 0)
                log.error(json.dumps({
                    "event": "notify.user_failed",
                    "user_id": profile.user_id,
                    "error": type(e).__name__,
                    "message": str(e),
                }))
                continue
            out.sent += r.sent
            if r.failed_triggers:
                log.warning(json.dumps({
                    "event": "notify.triggers_failed",
                    "user_id": profile.user_id,
                    "triggers": r.failed_triggers,
                }))
        if out.deferred:
            log.warning(f"batch deadline {deadline_s}s hit; {out.deferred} user(s) deferred to next run")
        log.info(json.dumps({"event": "notify.batch_done", **out.as_dict()}))
        return out
