from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List


@dataclass(frozen=True)
class RunResult:
    changes: int
    last_insert_rowid: int = 0


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool
    default_value: Any
    primary_key: bool


@dataclass(frozen=True)
class IndexInfo:
    name: str
    table: str
    unique: bool
    columns: List[str] = field(default_factory=list)
