"""Exception types shared by the chat core, the store and the HTTP layer.

Every error carries an HTTP-style ``status_code`` so the query endpoints can
surface it directly, while the WebSocket event paths catch them at the
Delivery Engine boundary and only log.
"""


class ParleyError(Exception):
    """Base exception for Parley errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidEvent(ParleyError):
    """Raised when an inbound event is missing required fields."""
    def __init__(self, message: str = "Invalid event"):
        super().__init__(message, status_code=400)


class InvalidMessage(InvalidEvent):
    """Raised when a message has neither a body nor a file descriptor."""
    def __init__(self, message: str = "Message requires a body or a file"):
        super().__init__(message)


class NotFound(ParleyError):
    """Raised when a delete targets a message that does not exist."""
    def __init__(self, message: str = "Message not found"):
        super().__init__(message, status_code=404)


class Forbidden(ParleyError):
    """Raised when a delete is requested by someone other than the sender."""
    def __init__(self, message: str = "Only the sender can delete this message"):
        super().__init__(message, status_code=403)


class Conflict(ParleyError):
    """Raised when a record with the same unique key already exists."""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class StoreUnavailable(ParleyError):
    """Raised when the document database cannot complete a call."""
    def __init__(self, message: str = "Store unavailable"):
        super().__init__(message, status_code=503)
