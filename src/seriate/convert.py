from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Union

from seriate.exception import SqlError

Params = Union[Sequence[Any], Mapping[str, Any]]

# Literals and comments are matched first so that placeholders inside them
# are skipped.
TOKEN = re.compile(
    r"""
    (?P<literal>'(?:[^']|'')*'|"(?:[^"]|"")*")
    | (?P<comment>--[^\n]*|/\*.*?\*/)
    | (?P<positional>\?\d*)
    | (?P<named>[:$@]([A-Za-z_][A-Za-z0-9_]*))
    """,
    re.VERBOSE | re.DOTALL,
)


def count_positional(query: str) -> int:
    return sum(
        1 for match in TOKEN.finditer(query) if match.group("positional")
    )


def named_params(query: str) -> Set[str]:
    return {
        match.group(5)
        for match in TOKEN.finditer(query)
        if match.group("named")
    }


def validate_params(query: str, params: Optional[Params] = None) -> None:
    """Check that the supplied parameters match the placeholders in the SQL

    Raises:
        SqlError: On a count mismatch, a missing named parameter, or when
            the SQL has placeholders but no parameters were given
    """
    if params is None:
        if count_positional(query) or named_params(query):
            raise SqlError(
                "SQL requires parameters but none provided", sql=query
            )
        return

    if isinstance(params, Mapping):
        provided = set(params.keys())
        for name in sorted(named_params(query)):
            if name not in provided:
                raise SqlError(
                    f"Missing required parameter: {name}",
                    sql=query,
                    params=params,
                )
        return

    expected = count_positional(query)
    if len(params) != expected:
        raise SqlError(
            f"Parameter count mismatch: SQL expects {expected} parameters "
            f"but {len(params)} provided",
            sql=query,
            params=params,
        )


def convert_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (int, float, str, bytes)):
        return value
    raise TypeError(f"Unsupported parameter type: {type(value).__name__}")


def convert_params(
    params: Optional[Params],
) -> Union[None, List[Any], Dict[str, Any]]:
    if params is None:
        return None
    if isinstance(params, Mapping):
        return {key: convert_value(value) for key, value in params.items()}
    if isinstance(params, (str, bytes)):
        raise TypeError("Parameters must be a sequence or a mapping")
    return [convert_value(value) for value in params]
