"""HTML and text bodies served to the browser that followed the redirect."""

from __future__ import annotations

import html
import json

from ..constants import NO_CODE_TEXT
from .models import RelayOptions, RelayResponse

_HTML = "text/html; charset=utf-8"
_TEXT = "text/plain; charset=utf-8"
_NOSNIFF = {"X-Content-Type-Options": "nosniff"}


def _script_literal(value: object) -> str:
    """JSON-encode *value* so it can sit inside an inline <script> block."""
    return json.dumps(value).replace("</", "<\\/").replace("<!--", "<\\!--")


def _page(title: str, message: str, script: str = "") -> str:
    script_block = f"\n<script>\n{script}\n</script>" if script else ""
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
        "<body>\n"
        f"<p>{html.escape(message)}</p>"
        f"{script_block}\n"
        "</body>\n"
        "</html>\n"
    )


def success_page(code: str, options: RelayOptions) -> RelayResponse:
    payload = _script_literal({"type": options.message_type, "code": code})
    origin = _script_literal(options.target_origin)
    lines = [
        "(function () {",
        "  var target = window.opener || (window.parent !== window ? window.parent : null);",
        "  if (target) {",
        f"    target.postMessage({payload}, {origin});",
        "  }",
    ]
    if options.close_window:
        lines.append("  window.close();")
    lines.append("})();")
    body = _page("Sign-in complete", "Sign-in complete. You can close this window.", "\n".join(lines))
    return RelayResponse(status=200, body=body, content_type=_HTML)


def no_code_page(detail: str | None = None) -> RelayResponse:
    # Plain text on purpose: nothing here may talk to an opener.
    # The detail echoes provider input, so browsers must not sniff it as HTML.
    body = f"{NO_CODE_TEXT}: {detail}" if detail else NO_CODE_TEXT
    return RelayResponse(status=200, body=body, content_type=_TEXT, headers=dict(_NOSNIFF))


def already_completed_page(options: RelayOptions) -> RelayResponse:
    script = "window.close();" if options.close_window else ""
    body = _page(
        "Sign-in already completed",
        "This sign-in has already been completed. You can close this window.",
        script,
    )
    return RelayResponse(status=200, body=body, content_type=_HTML)


def not_found_page() -> RelayResponse:
    return RelayResponse(status=404, body="Not Found", content_type=_TEXT, headers=dict(_NOSNIFF))
