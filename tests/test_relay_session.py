"""Tests for RelaySession: first-redirect-wins completion and result delivery."""

from __future__ import annotations

import threading
import time

import pytest

from loopback_relay.core.relay import (
    RedirectRequest,
    RelayResult,
    RelaySession,
    ResultKind,
)


def _req(target: str) -> RedirectRequest:
    return RedirectRequest.from_target(target)


# ── RedirectRequest / RelayResult ───────────────────────────────────────


def test_from_target_splits_path_and_decodes_query() -> None:
    req = _req("/cb?code=a%2Bb+c&state=xyz")
    assert req.path == "/cb"
    assert req.query == {"code": "a+b c", "state": "xyz"}


def test_from_target_without_path_defaults_to_root() -> None:
    assert _req("?code=1").path == "/"


def test_param_treats_blank_as_missing() -> None:
    req = _req("/?code=&error=x")
    assert req.param("code") is None
    assert req.param("error") == "x"
    assert req.param("state") is None


def test_result_invariants() -> None:
    with pytest.raises(ValueError):
        RelayResult(ResultKind.SUCCESS)
    with pytest.raises(ValueError):
        RelayResult(ResultKind.FAILURE, code="c", error_detail="e")
    with pytest.raises(ValueError):
        RelayResult(ResultKind.MALFORMED)


def test_result_to_dict() -> None:
    assert RelayResult.success("c").to_dict() == {"kind": "success", "code": "c"}
    assert RelayResult.failure("denied").to_dict() == {"kind": "failure", "error_detail": "denied"}


# ── First redirect wins ─────────────────────────────────────────────────


def test_first_redirect_completes_session() -> None:
    session = RelaySession("/")
    result, response = session.dispatch(_req("/?code=one"))

    assert result == RelayResult.success("one")
    assert response.status == 200
    assert session.completed is True
    assert session.result == result


def test_late_redirect_gets_already_completed_page() -> None:
    session = RelaySession("/")
    session.dispatch(_req("/?code=one"))

    result, response = session.dispatch(_req("/?code=two"))

    assert result is None
    assert response.status == 200
    assert "already been completed" in response.body
    assert "postMessage" not in response.body
    assert session.result == RelayResult.success("one")


def test_failed_redirect_also_completes_session() -> None:
    session = RelaySession("/")
    first, _ = session.dispatch(_req("/?error=access_denied"))
    second, response = session.dispatch(_req("/?code=late"))

    assert first is not None and first.kind is ResultKind.FAILURE
    assert second is None
    assert "postMessage" not in response.body


def test_not_found_does_not_touch_completion() -> None:
    session = RelaySession("/")
    result, response = session.dispatch(_req("/favicon.ico"))

    assert result is None
    assert response.status == 404
    assert session.completed is False


def test_concurrent_redirects_deliver_exactly_one_success() -> None:
    for _ in range(20):
        session = RelaySession("/")
        barrier = threading.Barrier(2)
        outcomes: list[tuple[RelayResult | None, str]] = []
        lock = threading.Lock()

        def _hit(code: str) -> None:
            barrier.wait()
            result, response = session.dispatch(_req(f"/?code={code}"))
            with lock:
                outcomes.append((result, response.body))

        threads = [threading.Thread(target=_hit, args=(c,)) for c in ("alpha", "beta")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        successes = [r for r, _ in outcomes if r is not None and r.is_success]
        assert len(outcomes) == 2
        assert len(successes) == 1
        assert sum("postMessage" in body for _, body in outcomes) == 1
        assert sum("already been completed" in body for _, body in outcomes) == 1
        assert session.result == successes[0]


# ── Delivery to the caller ──────────────────────────────────────────────


def test_wait_times_out_with_none() -> None:
    assert RelaySession("/").wait(0.05) is None


def test_wait_returns_result_from_other_thread() -> None:
    session = RelaySession("/")
    timer = threading.Timer(0.05, session.dispatch, args=(_req("/?code=later"),))
    timer.start()
    try:
        assert session.wait(5) == RelayResult.success("later")
    finally:
        timer.cancel()


def test_wait_does_not_return_before_response_is_written() -> None:
    session = RelaySession("/")
    written = threading.Event()
    seen_at_wakeup: list[bool] = []

    def _slow_respond(_response: object) -> None:
        time.sleep(0.2)
        written.set()

    def _waiter() -> None:
        session.wait(5)
        seen_at_wakeup.append(written.is_set())

    waiter = threading.Thread(target=_waiter)
    waiter.start()
    session.add_listener(lambda _result: seen_at_wakeup.append(written.is_set()))

    result, _response = session.dispatch(_req("/?code=c1"), respond=_slow_respond)
    waiter.join(timeout=5)

    assert result == RelayResult.success("c1")
    assert seen_at_wakeup == [True, True]


def test_failing_respond_still_completes_session() -> None:
    session = RelaySession("/")

    def _broken_pipe(_response: object) -> None:
        raise BrokenPipeError("browser went away")

    with pytest.raises(BrokenPipeError):
        session.dispatch(_req("/?code=c1"), respond=_broken_pipe)

    assert session.completed is True
    assert session.wait(0) == RelayResult.success("c1")


def test_listener_called_once_with_result() -> None:
    session = RelaySession("/")
    seen: list[RelayResult] = []
    session.add_listener(seen.append)

    session.dispatch(_req("/?code=c1"))
    session.dispatch(_req("/?code=c2"))

    assert seen == [RelayResult.success("c1")]


def test_listener_added_after_completion_fires_immediately() -> None:
    session = RelaySession("/")
    session.dispatch(_req("/?code=c1"))
    seen: list[RelayResult] = []

    session.add_listener(seen.append)

    assert seen == [RelayResult.success("c1")]


def test_failing_listener_does_not_break_response() -> None:
    session = RelaySession("/")

    def _boom(_result: RelayResult) -> None:
        raise RuntimeError("listener bug")

    session.add_listener(_boom)
    result, response = session.dispatch(_req("/?code=c1"))

    assert result == RelayResult.success("c1")
    assert response.status == 200
