"""Execution context produced by the model factory."""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable

from ..models.model_types import ModelConfiguration


@dataclass(frozen=True)
class ModelContext:
    """A fully assembled model, input processor, and tokenizer."""

    configuration: ModelConfiguration
    model: Any
    processor: Any
    tokenizer: Any


class ModelContainer:
    """Owns a ``ModelContext`` and hands it to one caller at a time."""

    def __init__(self, context: ModelContext):
        self._context = context
        self._lock = asyncio.Lock()

    @property
    def context(self) -> ModelContext:
        return self._context

    @property
    def configuration(self) -> ModelConfiguration:
        return self._context.configuration

    async def perform(self, action: Callable[[ModelContext], Any]) -> Any:
        """Run ``action(context)`` while holding the container lock."""
        async with self._lock:
            result = action(self._context)
            if inspect.isawaitable(result):
                result = await result
            return result
