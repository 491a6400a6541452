from enum import Enum

from seriate.exception import SeriateError


class TransactionState(Enum):
    """Lifecycle of one transaction() invocation"""

    IDLE = "idle"
    OPENING = "opening"
    RUNNING = "running"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"
    SETTLED = "settled"


class TransactionError(SeriateError):
    """Base exception for transaction errors"""

    pass


class SavepointStackError(TransactionError):
    """Raised when the savepoint stack would be left out of order"""

    pass
