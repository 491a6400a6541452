"""
Transaction system for seriate.

Top-level transactions are serialized through a FIFO queue; transactions
opened from inside a running one nest as savepoints.
"""

from .coordinator import TransactionCoordinator
from .interfaces import (
    SavepointStackError,
    TransactionError,
    TransactionState,
)
from .queue import QueueEntry, TransactionQueue
from .savepoint import Savepoint, SavepointStack, TransactionFrame

__all__ = [
    "TransactionCoordinator",
    "TransactionError",
    "TransactionState",
    "SavepointStackError",
    "QueueEntry",
    "TransactionQueue",
    "Savepoint",
    "SavepointStack",
    "TransactionFrame",
]
