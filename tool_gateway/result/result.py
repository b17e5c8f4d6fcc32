"""Ok/Error tagged union for seams that report failure without raising.

Used by config loading, argument validation and approval lookups. Callers
branch with ``match``:

    match load_server_configs(path):
        case Ok(configs):
            ...
        case Error(message):
            ...
"""

from dataclasses import dataclass
from typing import Generic, TypeVar


_T = TypeVar("_T")
_E = TypeVar("_E")


@dataclass(frozen=True)
class Ok(Generic[_T]):  # noqa: UP046
    value: _T

    def is_ok(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Error(Generic[_E]):  # noqa: UP046
    """Failure variant; ``value`` is usually a human readable message."""

    value: _E

    def is_ok(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Error({self.value!r})"


Result = Ok[_T] | Error[_E]
