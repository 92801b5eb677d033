"""
trophyroom.errors — Callable Error Taxonomy
=============================================

Every callable operation signals failure by raising :class:`CallableError`
with one of the :class:`ErrorCode` values.  The API layer renders the error
verbatim inside the callable error envelope; the client library decodes
the envelope back into the same exception type.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorCode(enum.StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid-argument"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    ALREADY_EXISTS = "already-exists"
    FAILED_PRECONDITION = "failed-precondition"
    INTERNAL = "internal"

    @property
    def wire_status(self) -> str:
        """Upper-snake status used in the error envelope (``NOT_FOUND``)."""
        return self.value.replace("-", "_").upper()

    @classmethod
    def from_wire_status(cls, status: str) -> ErrorCode:
        """Inverse of :attr:`wire_status`; unknown statuses map to INTERNAL."""
        value = (status or "").lower().replace("_", "-")
        try:
            return cls(value)
        except ValueError:
            return cls.INTERNAL


HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.FAILED_PRECONDITION: 400,
    ErrorCode.INTERNAL: 500,
}


class CallableError(Exception):
    """Failure of a callable operation.

    Attributes:
        code: :class:`ErrorCode`
        message: human-readable message, safe to show to the caller
        details: optional structured data (e.g. ``{"reason": "reverse-pending"}``)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.code = ErrorCode(code)
        self.message = message or self.code.value
        self.details = details or {}
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.code]

    @property
    def reason(self) -> str | None:
        return self.details.get("reason")

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "status": self.code.wire_status,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> CallableError:
        return cls(
            ErrorCode.from_wire_status(body.get("status", "")),
            body.get("message"),
            body.get("details"),
        )

    def __repr__(self) -> str:
        return f"<CallableError code={self.code.value} message={self.message!r}>"
