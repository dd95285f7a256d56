"""One-shot request waiter raced against a timeout."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from pykrisp.exceptions import KrispConnectionTimeoutError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class PendingRequest(Generic[T]):
    """A pending request/response call.

    Exactly one of :meth:`resolve`, :meth:`reject` or the timeout settles
    it; later calls are ignored. Teardown callbacks (listener removal)
    run once on every exit path of :meth:`wait`.
    """

    def __init__(self, description: str, *, timeout: float) -> None:
        self.description = description
        self._timeout = timeout
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._teardown: list[Callable[[], None]] = []

    @property
    def done(self) -> bool:
        return self._future.done()

    def add_teardown(self, callback: Callable[[], None]) -> None:
        self._teardown.append(callback)

    def resolve(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, exc: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(exc)
        return True

    def close(self) -> None:
        """Run the teardown callbacks once."""
        callbacks, self._teardown = self._teardown, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                _logger.debug("Teardown for %s failed", self.description, exc_info=True)

    async def wait(self) -> T:
        try:
            return await asyncio.wait_for(self._future, self._timeout)
        except TimeoutError:
            raise KrispConnectionTimeoutError(f"{self.description} timeout") from None
        finally:
            self.close()
