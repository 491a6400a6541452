from __future__ import annotations

from abc import ABC, abstractmethod
from contextvars import ContextVar, Token
from os import PathLike
from typing import TYPE_CHECKING, Any, Optional, Union

from seriate.exception import DatabaseClosedError, SeriateError

if TYPE_CHECKING:
    from seriate.transaction.savepoint import TransactionFrame


class BaseInterface(ABC):
    """A single, non-reentrant connection to an embedded database.

    Besides running statements, every interface instance owns the context
    variable that records which transaction frame (if any) the current
    task is executing inside of. Because the variable belongs to the
    instance, two databases never see each other's transactions.
    """

    scheme = "dummy"

    @abstractmethod
    async def open(self): ...

    @abstractmethod
    async def close(self): ...

    @abstractmethod
    async def execute(self, sql: str, params: Any = None): ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    def __init__(
        self,
        db_path: Union[str, PathLike] = ":memory:",
        foreign_keys: bool = True,
        check_same_thread: bool = False,
    ) -> None:
        """Interface initialization.

        Args:
            db_path (Union[str, PathLike], optional): Path to the database
                file. Defaults to `":memory:"`
            foreign_keys (bool, optional): Whether to enforce foreign key
                constraints. Defaults to `True`
            check_same_thread (bool, optional): Passed through to the
                driver. Defaults to `False`
        """
        if not isinstance(db_path, (str, PathLike)):
            raise SeriateError("db_path: must be a string or a path")

        if isinstance(db_path, str) and not db_path.strip():
            raise SeriateError(
                "db_path: must be a string at least 1 character long"
            )

        if not isinstance(foreign_keys, bool):
            raise SeriateError("foreign_keys: must be a boolean")

        self._db_path = db_path
        self._foreign_keys = foreign_keys
        self._check_same_thread = check_same_thread
        self._frame: ContextVar[Optional[TransactionFrame]] = ContextVar(
            f"frame_{id(self):x}", default=None
        )

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.db_path}>"

    @property
    def db_path(self):
        return self._db_path

    @property
    def foreign_keys(self):
        return self._foreign_keys

    def ensure_open(self) -> None:
        if not self.is_open:
            raise DatabaseClosedError()

    def current_frame(self) -> Optional[TransactionFrame]:
        return self._frame.get()

    def enter_frame(
        self, frame: TransactionFrame
    ) -> Token[Optional[TransactionFrame]]:
        return self._frame.set(frame)

    def exit_frame(self, token: Token[Optional[TransactionFrame]]) -> None:
        self._frame.reset(token)
