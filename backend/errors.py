# backend/errors.py


class ThumbnailError(Exception):
    """Base class for every failure surfaced to the caller."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ThumbnailError):
    status_code = 400
    default_message = "Invalid request"


class ConfigurationError(ThumbnailError):
    status_code = 500
    default_message = "Provider API token not configured"


class NetworkError(ThumbnailError):
    status_code = 502
    default_message = "Could not reach the generation provider"


class ProviderError(ThumbnailError):
    status_code = 502
    default_message = "Generation provider returned an error"


class GenerationFailed(ThumbnailError):
    status_code = 502
    default_message = "Thumbnail generation failed"


class GenerationCanceled(ThumbnailError):
    status_code = 409
    default_message = "Generation was canceled"


class GenerationTimeout(ThumbnailError, TimeoutError):
    status_code = 504
    default_message = "Generation timed out"


class SessionBusyError(ThumbnailError):
    status_code = 409
    default_message = "A generation is already running for this session"


class SessionNotFound(ThumbnailError):
    status_code = 404
    default_message = "Session does not exist"
