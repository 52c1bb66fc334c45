from .errors import BindError, MalformedRedirect, NoRelayRecipient, NotFoundPath, RelayError
from .handler import RelaySession, handle_redirect
from .models import RedirectRequest, RelayOptions, RelayResponse, RelayResult, ResultKind
from .server import ListenHandle, run_relay, start, stop

__all__ = [
    "BindError",
    "ListenHandle",
    "MalformedRedirect",
    "NoRelayRecipient",
    "NotFoundPath",
    "RedirectRequest",
    "RelayError",
    "RelayOptions",
    "RelayResponse",
    "RelayResult",
    "RelaySession",
    "ResultKind",
    "handle_redirect",
    "run_relay",
    "start",
    "stop",
]
