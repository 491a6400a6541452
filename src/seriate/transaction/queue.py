from __future__ import annotations

import asyncio
import contextvars
import logging
from collections import deque
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)

Runner = Callable[[Callable[[], Any]], Awaitable[Any]]


@dataclass
class QueueEntry:
    callback: Callable[[], Any]
    future: asyncio.Future
    sequence: int
    context: contextvars.Context = field(repr=False)


class TransactionQueue:
    """FIFO of top-level transactions waiting for the connection.

    Entries are admitted synchronously by ``submit`` and run one at a time
    by a single processor task. Each entry runs inside a copy of the
    context it was submitted from. An entry starts only once the previous
    one has completely settled, whatever its outcome.
    """

    def __init__(self, runner: Runner) -> None:
        self._runner = runner
        self._entries: Deque[QueueEntry] = deque()
        self._sequence = count(1)
        self._processor: Optional[asyncio.Task] = None
        self._current: Optional[QueueEntry] = None

    @property
    def pending(self) -> int:
        """Number of admitted entries that have not started yet"""
        return len(self._entries)

    @property
    def is_processing(self) -> bool:
        return self._processor is not None and not self._processor.done()

    @property
    def current(self) -> Optional[QueueEntry]:
        return self._current

    def submit(self, callback: Callable[[], Any]) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        entry = QueueEntry(
            callback=callback,
            future=loop.create_future(),
            sequence=next(self._sequence),
            context=contextvars.copy_context(),
        )
        self._entries.append(entry)
        logger.debug(
            "Admitted transaction #%d (%d waiting)",
            entry.sequence,
            len(self._entries),
        )

        if not self.is_processing:
            self._processor = loop.create_task(self._process())
        return entry.future

    async def _process(self) -> None:
        loop = asyncio.get_running_loop()
        while self._entries:
            entry = self._entries.popleft()
            self._current = entry
            logger.debug("Starting transaction #%d", entry.sequence)
            try:
                result = await loop.create_task(
                    self._runner(entry.callback), context=entry.context
                )
            except asyncio.CancelledError:
                if not entry.future.done():
                    entry.future.cancel()
                raise
            except Exception as e:
                if not entry.future.done():
                    entry.future.set_exception(e)
            else:
                if not entry.future.done():
                    entry.future.set_result(result)
            finally:
                self._current = None
            logger.debug("Settled transaction #%d", entry.sequence)

    def close(self, error: Exception) -> int:
        """Reject every entry that has not started yet

        Returns:
            int: The number of rejected entries
        """
        rejected = 0
        while self._entries:
            entry = self._entries.popleft()
            if not entry.future.done():
                entry.future.set_exception(error)
                rejected += 1
        if rejected:
            logger.warning(
                "Rejected %d pending transaction(s): %s", rejected, error
            )
        return rejected

    async def join(self) -> None:
        """Wait until the processor has drained the queue"""
        if self._processor is not None and not self._processor.done():
            await asyncio.shield(self._processor)
