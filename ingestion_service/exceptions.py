class IngestionError(Exception):
    """Request-level failure. Nothing in the request has been processed."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = None):
        self.message = message or self.code
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"error": self.code, "message": self.message}


class MalformedRequestError(IngestionError):
    status_code = 400
    code = "malformed_request"


class UnauthorizedError(IngestionError):
    status_code = 401
    code = "unauthorized"


class PayloadTooLargeError(IngestionError):
    status_code = 413
    code = "payload_too_large"


class TooManyEventsError(IngestionError):
    status_code = 413
    code = "too_many_events"


class StoreUnavailableError(IngestionError):
    """The event store failed as a whole. Clients should retry the batch."""

    status_code = 503
    code = "store_unavailable"


class RecordRejected(Exception):
    """A single envelope was refused. Its siblings are unaffected."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
