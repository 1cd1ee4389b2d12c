# capability_adapter/results.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        if isinstance(self.error, BaseException):
            raise self.error
        raise RuntimeError(f"unwrap() on Err: {self.error!r}")

    def map(self, fn: Callable[[Any], Any]) -> "Err[E]":
        return self


Result = Union[Ok[T], Err[E]]
