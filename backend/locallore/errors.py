class LocalLoreError(Exception):
    """Base class for domain errors rendered by the API exception handler."""

    status_code = 500
    code = "internal_error"
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidInteractionType(LocalLoreError):
    status_code = 400
    code = "invalid_interaction_type"
    message = "Invalid interaction type"


class AuthenticationRequired(LocalLoreError):
    status_code = 401
    code = "authentication_required"
    message = "Authentication required"


class EventNotFound(LocalLoreError):
    status_code = 404
    code = "event_not_found"
    message = "Event not found"


class StorageWriteFailure(LocalLoreError):
    status_code = 500
    code = "storage_write_failure"
    message = "Failed to save interaction"


class FeedUnavailable(LocalLoreError):
    status_code = 500
    code = "feed_unavailable"
    message = "Failed to load events"


class DuplicateInteraction(LocalLoreError):
    """Unique-constraint hit on an interaction insert. Callers treat it as success."""

    status_code = 200
    code = "duplicate_interaction"
    message = "Interaction already recorded"


class MLServiceError(LocalLoreError):
    status_code = 503
    code = "ml_unavailable"
    message = "ML service unavailable"


class UpstreamTimeout(MLServiceError):
    code = "ml_timeout"
    message = "ML service timed out"


class UpstreamMalformed(MLServiceError):
    code = "ml_malformed_response"
    message = "ML service returned an invalid response"


class MLServiceUnavailable(MLServiceError):
    pass
