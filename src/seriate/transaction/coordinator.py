from __future__ import annotations

import asyncio
import logging
from contextvars import Token
from inspect import isawaitable
from typing import Any, Awaitable, Callable, TypeVar, Union
from uuid import uuid4

from seriate.base.interface import BaseInterface

from .interfaces import (
    SavepointStackError,
    TransactionError,
    TransactionState,
)
from .queue import TransactionQueue
from .savepoint import Savepoint, SavepointStack, TransactionFrame

logger = logging.getLogger(__name__)

T = TypeVar("T")
Callback = Callable[[], Union[T, Awaitable[T]]]


async def produce(callback: Callback) -> Any:
    """Run a callback and await its outcome if it is awaitable"""
    result = callback()
    if isawaitable(result):
        result = await result
    return result


class TransactionCoordinator:
    """Sole owner of the connection's transactional state.

    Calls to ``transaction()`` made from inside a running callback of the
    same connection nest as savepoints; every other call is queued and
    runs as a top-level ``BEGIN``/``COMMIT`` transaction once all earlier
    top-level calls have settled. A call arriving after its enclosing
    callback has returned (while it commits or rolls back) is queued too.
    """

    def __init__(self, connection: BaseInterface):
        self._connection = connection
        self._stack = SavepointStack()
        self._queue = TransactionQueue(self._run_top_level)

    @property
    def connection(self) -> BaseInterface:
        return self._connection

    @property
    def stack(self) -> SavepointStack:
        return self._stack

    @property
    def queue(self) -> TransactionQueue:
        return self._queue

    @property
    def depth(self) -> int:
        return self._stack.depth

    @property
    def in_transaction(self) -> bool:
        return self._stack.depth > 0

    def transaction(self, callback: Callback) -> asyncio.Future:
        """Run ``callback`` inside a transaction

        Args:
            callback (Callback): A function taking no arguments. It may
                return a value or an awaitable.

        Returns:
            asyncio.Future: Resolves to the callback's result once the
                transaction has committed, or raises the callback's
                error once it has been rolled back
        """
        self._connection.ensure_open()
        parent = self._connection.current_frame()
        if parent is not None and parent.accepts_children:
            child = asyncio.get_running_loop().create_task(
                self._run_nested(parent, callback)
            )
            parent.track(child)
            return child
        return self._queue.submit(callback)

    async def _run_top_level(self, callback: Callback) -> Any:
        transaction_id = f"txn_{uuid4().hex[:8]}"
        frame = self._stack.push_root(transaction_id)
        token = self._connection.enter_frame(frame)
        try:
            frame.transition(TransactionState.OPENING)
            await self._connection.execute("BEGIN")
            logger.debug("Transaction %s started", transaction_id)

            try:
                frame.transition(TransactionState.RUNNING)
                result = await produce(callback)
                await frame.drain()
            except BaseException:
                frame.transition(TransactionState.ROLLING_BACK)
                await self._guaranteed_rollback(frame)
                raise

            frame.transition(TransactionState.COMMITTING)
            try:
                await self._connection.execute("COMMIT")
            except Exception as e:
                logger.error(
                    "Commit failed for %s, attempting rollback: %s",
                    transaction_id,
                    e,
                )
                await self._guaranteed_rollback(frame)
                raise
            logger.info("Transaction %s committed", transaction_id)
            return result
        finally:
            frame.settle()
            self._leave(frame, token)

    async def _guaranteed_rollback(self, frame: TransactionFrame) -> None:
        try:
            await self._connection.execute("ROLLBACK")
            logger.info("Transaction %s rolled back", frame.name)
        except Exception as rollback_error:
            logger.critical(
                "CRITICAL: Rollback failed for %s: %s",
                frame.name,
                rollback_error,
            )

    async def _run_nested(
        self, parent: TransactionFrame, callback: Callback
    ) -> Any:
        async with parent.child_lock:
            if not parent.accepts_children:
                raise TransactionError(
                    f"Transaction {parent.name} is {parent.state.value}; "
                    "a nested transaction cannot start"
                )
            savepoint = self._stack.push_savepoint(parent, self._connection)
            token = self._connection.enter_frame(savepoint)
            try:
                savepoint.transition(TransactionState.OPENING)
                await savepoint.create()

                try:
                    savepoint.transition(TransactionState.RUNNING)
                    result = await produce(callback)
                    await savepoint.drain()
                except BaseException:
                    savepoint.transition(TransactionState.ROLLING_BACK)
                    await self._rollback_savepoint(savepoint)
                    raise

                savepoint.transition(TransactionState.COMMITTING)
                try:
                    await savepoint.release()
                except Exception:
                    await self._rollback_savepoint(savepoint)
                    raise
                return result
            finally:
                savepoint.settle()
                self._leave(savepoint, token)

    def _leave(self, frame: TransactionFrame, token: Token) -> None:
        try:
            self._stack.pop(frame)
        except SavepointStackError as e:
            logger.critical("CRITICAL: %s; discarding stale frames", e)
            self._stack.discard(frame)
        finally:
            self._connection.exit_frame(token)

    async def _rollback_savepoint(self, savepoint: Savepoint) -> None:
        try:
            await savepoint.rollback()
        except Exception as rollback_error:
            logger.error(
                "Failed to rollback to savepoint %s: %s",
                savepoint.name,
                rollback_error,
            )

    async def close(self, error: Exception) -> None:
        """Reject queued transactions and wait for the running one"""
        self._queue.close(error)
        await self._queue.join()
