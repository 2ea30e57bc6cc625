"""
One-shot completion future for a task.
"""

import asyncio
import logging
from typing import Any, Callable, Generator, Optional

logger = logging.getLogger(__name__)


class CompletionFuture:
    """
    Awaitable that settles exactly once with a task's outcome.

    Wraps an ``asyncio.Future``; only the first ``resolve``/``reject`` call
    has an effect, later ones are ignored and reported as ``False``.

    Example:
        future = await coordinator.register("build", [])
        ...
        result = await future
    """

    def __init__(self, task_id: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.task_id = task_id
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()

    def resolve(self, result: Any) -> bool:
        """Settle with a result. Returns False if already settled."""
        if self._future.done():
            logger.debug(f"Future of task {self.task_id} already settled, ignoring result")
            return False
        self._future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with an exception. Returns False if already settled."""
        if self._future.done():
            logger.debug(f"Future of task {self.task_id} already settled, ignoring rejection")
            return False
        self._future.set_exception(error)
        # awaiting is optional for callers; mark the exception as retrieved
        self._future.exception()
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Any:
        return self._future.result()

    def exception(self) -> Optional[BaseException]:
        return self._future.exception()

    def add_done_callback(self, callback: Callable[[asyncio.Future], None]) -> None:
        self._future.add_done_callback(callback)

    def __await__(self) -> Generator[Any, None, Any]:
        return asyncio.shield(self._future).__await__()

    def __repr__(self) -> str:
        state = "done" if self._future.done() else "pending"
        return f"<CompletionFuture task_id={self.task_id!r} {state}>"
