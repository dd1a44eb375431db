"""Cooperative cancellation handle for one user request."""

from __future__ import annotations

import uuid

from ...errors import RequestSuperseded

__all__ = ["CancellationToken"]


class CancellationToken:
    """Checked before every suspension point of a request.

    Cancelling does not abort work already awaiting; it only makes the next
    check raise :class:`RequestSuperseded` and lets the session refuse any
    late mutation from the request holding this token.
    """

    __slots__ = ("request_id", "_cancelled")

    def __init__(self, request_id: str | None = None) -> None:
        self.request_id = request_id or uuid.uuid4().hex[:12]
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestSuperseded(request_id=self.request_id)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "live"
        return f"CancellationToken({self.request_id!r}, {state})"
