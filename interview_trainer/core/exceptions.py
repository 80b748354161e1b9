from typing import Optional


class InterviewTrainerError(Exception):
    """Base class for every error raised by the trainer."""


class ConfigError(InterviewTrainerError):
    """A provider is missing required configuration (API key, endpoint, ...)."""


class NetworkError(InterviewTrainerError):
    """An upstream call failed in transport or returned a non-2xx status."""

    def __init__(self,
                 message: str,
                 provider: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        details = []
        if self.provider:
            details.append(f"provider={self.provider}")
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        base = super().__str__()
        return f"{base} ({', '.join(details)})" if details else base


class FrameParseError(InterviewTrainerError):
    """One event-stream frame carried a payload that is not valid JSON."""

    def __init__(self, payload: str):
        super().__init__(f"malformed stream frame: {payload[:200]!r}")
        self.payload = payload


class AudioDecodeError(InterviewTrainerError):
    """An uploaded recording could not be converted to PCM."""


class ParseError(InterviewTrainerError):
    """Structured-result extraction exhausted every strategy."""


class ServiceError(InterviewTrainerError):
    """User-safe failure raised by the managers for request-level errors."""

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message
