from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..constants import PARAM_CODE, PARAM_ERROR, PARAM_ERROR_DESCRIPTION
from . import pages
from .errors import MalformedRedirect, NoRelayRecipient, NotFoundPath
from .models import RedirectRequest, RelayOptions, RelayResponse, RelayResult, ResultKind

logger = logging.getLogger(__name__)

ResultListener = Callable[[RelayResult], None]
ResponseWriter = Callable[[RelayResponse], None]


def _classify(request: RedirectRequest) -> RelayResult:
    code = request.param(PARAM_CODE)
    error = request.param(PARAM_ERROR)

    if code is not None and error is not None:
        exc = MalformedRedirect(f"Provider redirect carries both code and error ({error!r})")
        logger.warning("Provider conformance issue: %s", exc)
        return RelayResult.malformed(str(exc))
    if code is not None:
        return RelayResult.success(code)
    if error is not None:
        description = request.param(PARAM_ERROR_DESCRIPTION)
        return RelayResult.failure(f"{error}: {description}" if description else error)

    exc = MalformedRedirect("Provider redirect carries neither code nor error")
    logger.warning("%s", exc)
    return RelayResult.malformed(str(exc))


def handle_redirect(
    request: RedirectRequest,
    callback_path: str = "/",
    options: RelayOptions | None = None,
) -> tuple[RelayResult | None, RelayResponse]:
    """Turn one inbound request into its result and browser response.

    Pure: no socket, no session state. Requests outside *callback_path*
    yield ``(None, 404)``; everything on the callback path yields a result.
    Only a success response carries the opener-messaging script.
    """
    options = options or RelayOptions()
    if request.path != callback_path:
        logger.debug("%s", NotFoundPath(request.path))
        return None, pages.not_found_page()

    result = _classify(request)
    if result.is_success:
        assert result.code is not None
        return result, pages.success_page(result.code, options)
    if result.kind is ResultKind.FAILURE:
        return result, pages.no_code_page(result.error_detail)
    return result, pages.no_code_page()


class RelaySession:
    """One login attempt: the first callback request wins, later ones are told so.

    The claim flag is checked and set under a single lock, so handlers
    running on concurrent server threads never deliver two results.
    """

    def __init__(self, callback_path: str = "/", options: RelayOptions | None = None):
        self.callback_path = callback_path
        self.options = options or RelayOptions()
        self._lock = threading.Lock()
        self._claimed = False
        self._done = threading.Event()
        self._result: RelayResult | None = None
        self._listeners: list[ResultListener] = []

    @property
    def completed(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> RelayResult | None:
        return self._result

    def add_listener(self, listener: ResultListener) -> None:
        """Call *listener* with the result once it is known (immediately if it already is)."""
        with self._lock:
            if not self._done.is_set():
                self._listeners.append(listener)
                return
            result = self._result
        assert result is not None
        listener(result)

    def dispatch(
        self,
        request: RedirectRequest,
        respond: ResponseWriter | None = None,
    ) -> tuple[RelayResult | None, RelayResponse]:
        """Claim the session for *request* and build its response.

        When *respond* is given it is called with the response before the
        session is marked complete, so ``wait()`` never returns while the
        browser's page is still unsent.
        """
        result: RelayResult | None = None
        if request.path != self.callback_path:
            _, response = handle_redirect(request, self.callback_path, self.options)
        else:
            with self._lock:
                if self._claimed:
                    logger.info("Ignoring late redirect: %s", NoRelayRecipient())
                    response = pages.already_completed_page(self.options)
                else:
                    result, response = handle_redirect(request, self.callback_path, self.options)
                    self._claimed = True
                    self._result = result

        try:
            if respond is not None:
                respond(response)
        finally:
            if result is not None:
                self._complete(result)
        return result, response

    def _complete(self, result: RelayResult) -> None:
        with self._lock:
            self._done.set()
            listeners, self._listeners = self._listeners, []

        logger.info("Relay session completed: %s", result.kind.value)
        for listener in listeners:
            try:
                listener(result)
            except Exception:  # listener errors stay out of the HTTP response
                logger.exception("Result listener failed")

    def wait(self, timeout: float | None = None) -> RelayResult | None:
        if not self._done.wait(timeout):
            return None
        return self._result
