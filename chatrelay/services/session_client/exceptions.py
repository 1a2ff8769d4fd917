"""Custom exceptions for the external session client."""


class SessionClientError(Exception):
    """Base exception for session client errors."""

    pass


class BridgeNotConnectedError(SessionClientError):
    """Raised when the bridge socket is not connected."""

    pass


class BridgeRequestError(SessionClientError):
    """Raised when the bridge rejects a request."""

    def __init__(self, method: str, message: str):
        super().__init__(f"{method} failed: {message}")
        self.method = method


class BridgeTimeoutError(SessionClientError):
    """Raised when the bridge does not answer in time."""

    pass
