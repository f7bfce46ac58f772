"""Streaming generation on top of ``model.generate``."""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Union

import torch
from transformers import AsyncTextIteratorStreamer, StoppingCriteria, StoppingCriteriaList, set_seed

from ..models.model_types import GenerateParameters
from ..runtime.context import ModelContext
from ..runtime.tokenizer import eos_token_ids

logger = logging.getLogger(__name__)


@dataclass
class GenerationChunk:
    """A piece of decoded output text."""

    text: str


@dataclass
class GenerateCompletionInfo:
    """Token counts and timings for a finished generation."""

    prompt_token_count: int
    generation_token_count: int
    prompt_time: float
    generate_time: float

    @property
    def tokens_per_second(self) -> float:
        if self.generate_time <= 0:
            return 0.0
        return self.generation_token_count / self.generate_time

    @property
    def prompt_tokens_per_second(self) -> float:
        if self.prompt_time <= 0:
            return 0.0
        return self.prompt_token_count / self.prompt_time


Generation = Union[GenerationChunk, GenerateCompletionInfo]


def seed(value: int) -> None:
    """Seed every sampler (torch, numpy, random)."""
    set_seed(value % (2 ** 32))


class CancellationCriteria(StoppingCriteria):
    """Stops generation once the cancellation event is set."""

    def __init__(self, event: threading.Event):
        self.event = event

    def __call__(self, input_ids: torch.LongTensor, scores: torch.FloatTensor, **kwargs) -> torch.BoolTensor:
        return torch.full(
            (input_ids.shape[0],), self.event.is_set(), dtype=torch.bool, device=input_ids.device
        )


def _prompt_length(model_input: Any) -> int:
    input_ids = model_input["input_ids"]
    return int(input_ids.shape[-1])


def _generated_length(output: Any, prompt_tokens: int) -> int:
    if output is None:
        return 0
    sequences = getattr(output, "sequences", output)
    return max(0, int(sequences.shape[-1]) - prompt_tokens)


async def generate(
    model_input: Any,
    parameters: GenerateParameters,
    context: ModelContext,
    cancellation: Optional[threading.Event] = None,
) -> AsyncIterator[Generation]:
    """
    Stream a generation as ``GenerationChunk`` items followed by one
    ``GenerateCompletionInfo``.

    ``model.generate`` runs on a worker thread; errors raised there are
    re-raised here once the stream has drained. Setting ``cancellation`` stops
    generation at the next token.
    """
    model = context.model
    tokenizer = context.tokenizer
    stop_event = cancellation or threading.Event()

    device = getattr(model, "device", None)
    if device is not None and hasattr(model_input, "to"):
        model_input = model_input.to(device)

    streamer = AsyncTextIteratorStreamer(tokenizer, skip_prompt=True, skip_special_tokens=True)
    kwargs: Dict[str, Any] = dict(model_input)
    kwargs.update(parameters.to_generation_kwargs(
        eos_token_ids(tokenizer, context.configuration.extra_eos_tokens)
    ))
    kwargs.update(
        streamer=streamer,
        stopping_criteria=StoppingCriteriaList([CancellationCriteria(stop_event)]),
        return_dict_in_generate=True,
    )
    prompt_tokens = _prompt_length(model_input)
    outcome: Dict[str, Any] = {}

    def _run() -> None:
        try:
            with torch.inference_mode():
                outcome["output"] = model.generate(**kwargs)
        except Exception as exc:
            outcome["error"] = exc
            streamer.end()

    worker = threading.Thread(target=_run, name="vlmeval-generate", daemon=True)
    started = time.perf_counter()
    first_chunk_at: Optional[float] = None
    worker.start()
    try:
        async for text in streamer:
            if first_chunk_at is None:
                first_chunk_at = time.perf_counter()
            if text:
                yield GenerationChunk(text)
        await asyncio.to_thread(worker.join)
    finally:
        if worker.is_alive():
            stop_event.set()

    if "error" in outcome:
        raise outcome["error"]

    finished = time.perf_counter()
    first = first_chunk_at if first_chunk_at is not None else finished
    info = GenerateCompletionInfo(
        prompt_token_count=prompt_tokens,
        generation_token_count=_generated_length(outcome.get("output"), prompt_tokens),
        prompt_time=first - started,
        generate_time=finished - first,
    )
    logger.debug(
        "Generated %d tokens in %.2fs (%.1f tokens/s)",
        info.generation_token_count, info.generate_time, info.tokens_per_second,
    )
    yield info
