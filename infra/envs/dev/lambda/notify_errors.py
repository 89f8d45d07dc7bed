# file: infra/envs/dev/lambda/notify_errors.py

class NotifyError(Exception): ...

class ConfigurationError(NotifyError):
    """Missing table names, credentials or cron secret. Fatal for the invocation."""

class AuthError(NotifyError):
    """Missing or rejected bearer token / cron secret."""

class PerUserError(NotifyError):
    """Store failure or time budget overrun while checking one user."""

    def __init__(self, user_id: str, message: str, sent: int = 0):
        super().__init__(f"{user_id}: {message}")
        self.user_id = user_id
        self.sent = sent  # notifications already recorded before the failure

class TriggerComputationError(NotifyError):
    """A single trigger blew up; the other triggers still run."""

    def __init__(self, trigger: str, cause: Exception):
        super().__init__(f"{trigger} failed: {cause}")
        self.trigger = trigger
        self.cause = cause
