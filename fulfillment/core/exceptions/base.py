"""
Root of the fulfillment error hierarchy.

Every error carries a machine-readable ``code`` and the HTTP status the API
answers with. Services raise these; the FastAPI handler turns them into the
JSON error body via ``to_dict()`` and the message handlers into chat replies.
"""
from __future__ import annotations

from typing import Any, Optional


class ProjectError(Exception):
    """
    Base exception for order, courier and integration errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable slug, e.g. ``ORDER_TAKEN`` or ``MISSING_FIELD``.
        http_status: Status the API responds with (default 500).
        details: Extra context merged into the API body (order_id, fields, ...).
        cause: The lower-level exception, if any (driver, HTTP or provider error).
    """

    default_code: str = "ERROR"
    default_http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.http_status = http_status or self.default_http_status
        self.details: dict[str, Any] = details or {}
        self.cause = cause

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def __str__(self) -> str:
        return self.message

    @property
    def is_client_error(self) -> bool:
        return self.http_status < 500

    def to_dict(self) -> dict[str, Any]:
        """API error body: ``detail`` and ``code`` plus the context fields.

        Context keys never override ``detail`` or ``code``. The cause is only
        named, never its traceback.
        """
        body: dict[str, Any] = {**self.details, "detail": self.message, "code": self.code}
        if self.cause is not None and not self.is_client_error:
            body["cause"] = type(self.cause).__name__
        return body
