"""
Savepoint stack for nested transactions.

One stack exists per database. Its bottom frame is the open top-level
transaction and every frame above it is a savepoint, so the stack length
is always the current nesting depth.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Set, Tuple

from .interfaces import SavepointStackError, TransactionError, TransactionState

if TYPE_CHECKING:
    from seriate.base.interface import BaseInterface

logger = logging.getLogger(__name__)


class TransactionFrame:
    """One open level of a transaction.

    Frames are what the connection's context variable points at while a
    callback runs, which is how nested calls find their parent.
    """

    def __init__(self, name: str, parent: Optional[TransactionFrame] = None):
        self.name = name
        self.parent = parent
        self.state = TransactionState.IDLE
        self._settled = False
        self._child_lock = asyncio.Lock()
        self._children: Set[asyncio.Future] = set()

    @property
    def depth(self) -> int:
        return 1 if self.parent is None else self.parent.depth + 1

    @property
    def is_active(self) -> bool:
        return not self._settled

    @property
    def accepts_children(self) -> bool:
        """Children may only open while the callback, or the drain of its
        children, is running.
        """
        return not self._settled and self.state is TransactionState.RUNNING

    @property
    def child_lock(self) -> asyncio.Lock:
        """Serializes sibling nested transactions opened under this frame"""
        return self._child_lock

    def track(self, child: asyncio.Future) -> None:
        self._children.add(child)
        child.add_done_callback(self._children.discard)

    async def drain(self) -> None:
        """Wait for nested transactions the callback did not await"""
        while self._children:
            pending = list(self._children)
            logger.debug(
                "Waiting for %d nested transaction(s) in %s",
                len(pending),
                self.name,
            )
            await asyncio.gather(*pending, return_exceptions=True)

    def transition(self, state: TransactionState) -> None:
        logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    def settle(self) -> None:
        self._settled = True
        self.transition(TransactionState.SETTLED)

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} ({self.state.value})>"


class Savepoint(TransactionFrame):
    """
    A savepoint allows creating nested rollback points within a transaction.
    """

    def __init__(
        self, name: str, parent: TransactionFrame, connection: BaseInterface
    ):
        super().__init__(name, parent)
        self.connection = connection
        self._released = False

        logger.debug(f"Created savepoint {self.name} under {parent.name}")

    async def create(self) -> None:
        await self.connection.execute(f"SAVEPOINT {self.name}")

    async def rollback(self) -> None:
        """Rollback to this savepoint, then release it"""
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")

        logger.debug(f"Rolling back to savepoint {self.name}")

        await self.connection.execute(f"ROLLBACK TO {self.name}")
        await self.release()
        logger.info(f"Successfully rolled back to savepoint {self.name}")

    async def release(self) -> None:
        """Release this savepoint (merges it into the enclosing level)"""
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")

        logger.debug(f"Releasing savepoint {self.name}")

        await self.connection.execute(f"RELEASE {self.name}")
        self._released = True

    @property
    def is_released(self) -> bool:
        """Check if this savepoint has been released"""
        return self._released


class SavepointStack:
    """Depth, frame stack and savepoint counter for one database"""

    def __init__(self) -> None:
        self._frames: List[TransactionFrame] = []
        self._counter = 0

    @property
    def depth(self) -> int:
        return len(self._frames)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(frame.name for frame in self._frames)

    @property
    def counter(self) -> int:
        return self._counter

    @property
    def top(self) -> Optional[TransactionFrame]:
        return self._frames[-1] if self._frames else None

    def push_root(self, transaction_id: str) -> TransactionFrame:
        if self._frames:
            raise SavepointStackError(
                f"Cannot begin {transaction_id}: {self.top} is still open"
            )
        frame = TransactionFrame(transaction_id)
        self._frames.append(frame)
        return frame

    def push_savepoint(
        self, parent: TransactionFrame, connection: BaseInterface
    ) -> Savepoint:
        if self.top is not parent:
            raise SavepointStackError(
                f"Cannot nest under {parent}: top of stack is {self.top}"
            )
        self._counter += 1
        savepoint = Savepoint(f"sp_{self._counter}", parent, connection)
        self._frames.append(savepoint)
        return savepoint

    def pop(self, frame: TransactionFrame) -> None:
        if self.top is not frame:
            raise SavepointStackError(
                f"Cannot pop {frame}: top of stack is {self.top}"
            )
        self._frames.pop()
        if not self._frames:
            self._counter = 0

    def discard(self, frame: TransactionFrame) -> None:
        """Drop ``frame`` and every frame above it

        Used when the stack is found out of order, so that the next
        top-level transaction starts from a clean stack.
        """
        if frame in self._frames:
            del self._frames[self._frames.index(frame) :]
        if not self._frames:
            self._counter = 0
