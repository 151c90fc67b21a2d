"""Custom exception hierarchy for ChannelSense.

Following error taxonomy: retryable, non-retryable, validation, degraded.
"""


class ChannelSenseError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(ChannelSenseError):
    """Errors that may succeed on a later run (network, storage hiccups)."""

    pass


class NonRetryableError(ChannelSenseError):
    """Errors that will not go away by running again (validation, config)."""

    pass


class ValidationError(NonRetryableError):
    """Data validation errors."""

    pass


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class DegradedSignalError(RetryableError):
    """One engagement signal could not be computed."""

    def __init__(self, signal: str, cause: BaseException | None = None) -> None:
        self.signal = signal
        message = f"Engagement signal unavailable: {signal}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)


class ChannelAnalysisError(RetryableError):
    """Metrics or ranking could not be produced for one channel."""

    def __init__(self, channel_id: str, reason: str) -> None:
        self.channel_id = channel_id
        self.reason = reason
        super().__init__(f"Channel {channel_id}: {reason}")


class RewardIssuanceError(RetryableError):
    """Reward issuance failed for one candidate."""

    pass


class NotificationError(RetryableError):
    """Delivering a notification failed."""

    pass


class NarrativeGenerationError(RetryableError):
    """LLM text generation failed."""

    pass


class FatalConfigurationError(NonRetryableError):
    """A required collaborator is missing or unusable; the run cannot start."""

    pass
