"""Errors that carry an optional source position, and helpers to gather them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Union

ErrorLike = Union[BaseException, str]


@dataclass(frozen=True)
class Position:
    """A location in a source file; a line of zero marks an unknown position."""

    filename: str = ""
    line: int = 0
    column: int = 0
    offset: int = 0

    @property
    def is_valid(self) -> bool:
        return self.line > 0

    def __str__(self) -> str:
        text = self.filename
        if self.is_valid:
            if text:
                text += ":"
            text += str(self.line)
            if self.column:
                text += f":{self.column}"
        return text or "-"


NO_POSITION = Position()


class WireError(Exception):
    """An error with an optional position that prefixes its message."""

    def __init__(self, error: ErrorLike, position: Position = NO_POSITION) -> None:
        super().__init__(error)
        self.error = error
        self.position = position

    @property
    def message(self) -> str:
        """The message without the position prefix."""
        return str(self.error)

    def __str__(self) -> str:
        if not self.position.is_valid:
            return str(self.error)
        return f"{self.position}: {self.error}"


class WireErrorList(Exception):
    """Several errors reported together."""

    def __init__(self, errors: Iterable[ErrorLike]) -> None:
        self.errors: List[ErrorLike] = list(errors)
        super().__init__(*self.errors)

    def __iter__(self) -> Iterator[ErrorLike]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __str__(self) -> str:
        return "\n".join(str(e) for e in self.errors)


class ErrorCollector:
    """An ordered list of errors that ignores ``None`` entries."""

    def __init__(self) -> None:
        self.errors: List[ErrorLike] = []

    def add(self, *args: Optional[ErrorLike]) -> None:
        """Append every error that is not ``None``."""
        self.errors.extend(e for e in args if e is not None)

    def raise_if_any(self) -> None:
        """Raise the gathered errors as a :class:`WireErrorList`, if there are any."""
        if self.errors:
            raise WireErrorList(self.errors)

    def __iter__(self) -> Iterator[ErrorLike]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)


def map_errors(
    errs: Iterable[ErrorLike], f: Callable[[ErrorLike], ErrorLike]
) -> List[ErrorLike]:
    """Return a new list with ``f`` applied to each error."""
    return [f(e) for e in errs]


def note_position(position: Position, error: Optional[ErrorLike]) -> Optional[ErrorLike]:
    """Attach ``position`` to ``error`` unless it already carries a position.

    Deeper calls are assumed to know the more precise position, so an existing
    :class:`WireError` is returned unchanged.
    """
    if error is None:
        return None
    if isinstance(error, WireError):
        return error
    return WireError(error, position)


def note_position_all(position: Position, errs: Iterable[ErrorLike]) -> List[ErrorLike]:
    """Attach ``position`` to every error in ``errs``."""
    return map_errors(errs, lambda e: note_position(position, e))