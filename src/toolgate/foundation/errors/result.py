"""Ok/Err outcome for coordinator operations that report failure instead of raising.

Registration, external resolution and status restore return a ``Result`` so
callers can branch on ``is_ok()`` without a try/except around every call.
"""

from __future__ import annotations

from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E")


class Result(Generic[T, E]):
    """Either a success value (Ok) or an error value (Err).

    Examples:
        >>> outcome = registry.register(definition)
        >>> if outcome.is_err():
        ...     print(outcome.unwrap_err().message)
        >>> Ok("search").unwrap()
        'search'
    """

    __slots__ = ("_value", "_ok")

    def __init__(self, value: T | E, ok: bool) -> None:
        self._value = value
        self._ok = ok

    def is_ok(self) -> bool:
        return self._ok

    def is_err(self) -> bool:
        return not self._ok

    def unwrap(self) -> T:
        """The success value. Raises RuntimeError on Err."""
        if not self._ok:
            raise RuntimeError(f"unwrap() called on Err({self._value!r})")
        return self._value  # type: ignore[return-value]

    def unwrap_err(self) -> E:
        """The error value. Raises RuntimeError on Ok."""
        if self._ok:
            raise RuntimeError(f"unwrap_err() called on Ok({self._value!r})")
        return self._value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        return self._value if self._ok else default  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self._ok

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        return self._ok == other._ok and self._value == other._value

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{'Ok' if self._ok else 'Err'}({self._value!r})"


def Ok(value: T) -> Result[T, E]:  # noqa: N802
    return Result(value, True)


def Err(error: E) -> Result[T, E]:  # noqa: N802
    return Result(error, False)
