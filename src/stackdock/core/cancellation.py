from __future__ import annotations

from stackdock.core.errors import OperationCancelledError


class CancelToken:
    """Caller-supplied cancellation flag threaded through engine I/O."""

    def __init__(self) -> None:
        self._reason: str | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(self._reason)


def check_cancelled(token: CancelToken | None) -> None:
    """Raise if ``token`` was cancelled; a missing token never cancels."""
    if token is not None:
        token.raise_if_cancelled()
