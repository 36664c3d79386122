"""Structured-completion provider contract.

The pipeline only depends on this protocol; concrete LLM-backed providers are
supplied by the host application.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class CompletionError(RuntimeError):
    """Raised by providers when a completion cannot be produced."""

    def __init__(self, message: str, code: str = "COMPLETION_ERROR") -> None:
        super().__init__(message)
        self.code = code


class StructuredCompletionProvider(Protocol):
    """Returns a response validated against `schema`."""

    async def complete_structured(
        self,
        messages: Sequence[Mapping[str, str]],
        schema: type[T],
        options: Mapping[str, Any] | None = None,
    ) -> T:
        ...
