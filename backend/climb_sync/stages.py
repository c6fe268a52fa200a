"""Per-stage outcome of the integration pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """The stage served substitute content; ``reason`` says why."""

    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


StageResult = Union[Ok[T], Degraded[T]]

__all__ = ["Degraded", "Ok", "StageResult"]
