"""Outcome of a generation job."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class GenerationSuccess:
    prompt: str
    images: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class GenerationFailure:
    message: str
    retryable: bool = True

    @property
    def success(self) -> bool:
        return False


GenerationResult = Union[GenerationSuccess, GenerationFailure]
