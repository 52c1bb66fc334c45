from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qs, urlsplit

from ..constants import AUTH_MESSAGE_TYPE, CORS_ALLOW_ORIGIN_ANY, TARGET_ORIGIN_ANY


class ResultKind(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class RedirectRequest:
    """Inbound redirect as seen by the relay: path plus decoded query."""

    path: str
    query: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_target(cls, target: str) -> RedirectRequest:
        """Build from a raw request target such as ``/?code=abc%2B1``.

        Values are URL-decoded once; for repeated keys the first value wins.
        """
        parts = urlsplit(target)
        params = parse_qs(parts.query, keep_blank_values=True)
        query = {key: values[0] for key, values in params.items() if values}
        return cls(path=parts.path or "/", query=query)

    def param(self, name: str) -> str | None:
        """Return the value of *name*, or None when missing or empty."""
        value = self.query.get(name)
        return value if value else None


@dataclass(frozen=True)
class RelayResult:
    kind: ResultKind
    code: str | None = None
    error_detail: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ResultKind.SUCCESS:
            if self.code is None or self.error_detail is not None:
                raise ValueError("success results carry a code and no error detail")
        elif self.code is not None or self.error_detail is None:
            raise ValueError(f"{self.kind.value} results carry an error detail and no code")

    @classmethod
    def success(cls, code: str) -> RelayResult:
        return cls(ResultKind.SUCCESS, code=code)

    @classmethod
    def failure(cls, detail: str) -> RelayResult:
        return cls(ResultKind.FAILURE, error_detail=detail)

    @classmethod
    def malformed(cls, reason: str) -> RelayResult:
        return cls(ResultKind.MALFORMED, error_detail=reason)

    @property
    def is_success(self) -> bool:
        return self.kind is ResultKind.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"kind": self.kind.value}
        if self.code is not None:
            d["code"] = self.code
        if self.error_detail is not None:
            d["error_detail"] = self.error_detail
        return d


@dataclass(frozen=True)
class RelayResponse:
    status: int
    body: str
    content_type: str = "text/html; charset=utf-8"
    headers: dict[str, str] = field(default_factory=dict)

    def encoded(self) -> bytes:
        return self.body.encode("utf-8")


@dataclass(frozen=True)
class RelayOptions:
    """How the success page hands the code to the opener context."""

    target_origin: str = TARGET_ORIGIN_ANY
    message_type: str = AUTH_MESSAGE_TYPE
    close_window: bool = True
    cors_allow_origin: str | None = CORS_ALLOW_ORIGIN_ANY
