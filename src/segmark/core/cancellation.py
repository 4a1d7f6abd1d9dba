"""Cooperative cancellation for a single conversion call."""

import asyncio
from typing import Optional

from segmark.core.exceptions import ConversionCancelledError


class CancellationToken:
    """Flag checked at page, entry and provider boundaries.

    Cancellation is one-way: once ``cancel`` has been called the token stays
    cancelled.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ConversionCancelledError(self._reason or "Conversion cancelled")

    async def wait(self) -> None:
        await self._event.wait()


class _NeverCancelled(CancellationToken):
    def cancel(self, reason: Optional[str] = None) -> None:
        raise RuntimeError("The shared 'none' token cannot be cancelled")


NONE = _NeverCancelled()
