"""Exception types shared by the sourcing workflow and its providers."""

from datetime import datetime


class RateLimitSignal(Exception):
    """A provider's quota is exhausted.

    Pauses the job (status RATE_LIMITED) instead of failing it. Never counts
    against the retry ceiling.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        reset_at: datetime,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.reset_at = reset_at
        self.detail = detail or message


class ProviderError(Exception):
    """Transient failure talking to an external provider."""


class StageFatalError(Exception):
    """Unrecoverable stage error: the job is marked FAILED immediately."""


class MissingCredentialsError(StageFatalError):
    """A required API key or token is not configured."""


class JobNotFoundError(LookupError):
    """No sourcing job exists with the given id."""


class RetryRejectedError(Exception):
    """A retry was requested for a job whose retries are exhausted."""


class WorkflowAlreadyRunningError(RuntimeError):
    """A second run was requested for a job that is already executing."""
