"""Relay error types."""

from __future__ import annotations


class RelayError(Exception):
    """Relay failure with an error classification.

    error_class values:
      "bind"       -- listening socket could not be acquired (fatal to the login)
      "malformed"  -- provider redirect broke the code/error exclusivity
      "duplicate"  -- redirect arrived after the session already completed
      "not_found"  -- request for a path other than the callback path
    """

    def __init__(self, message: str, error_class: str = "relay"):
        super().__init__(message)
        self.error_class = error_class

    @property
    def is_fatal(self) -> bool:
        """True when the login attempt cannot proceed at all."""
        return self.error_class == "bind"


class BindError(RelayError):
    """Raised by ``start`` when the relay cannot listen on its port.

    reason values: "in_use", "permission", "os".
    """

    def __init__(self, message: str, host: str, port: int, reason: str = "os"):
        super().__init__(message, error_class="bind")
        self.host = host
        self.port = port
        self.reason = reason


class MalformedRedirect(RelayError):
    def __init__(self, message: str):
        super().__init__(message, error_class="malformed")


class NoRelayRecipient(RelayError):
    def __init__(self, message: str = "Relay session already completed"):
        super().__init__(message, error_class="duplicate")


class NotFoundPath(RelayError):
    def __init__(self, path: str):
        super().__init__(f"No route for {path!r}", error_class="not_found")
        self.path = path
