"""Tests for the VLMEvaluator generation session."""

import asyncio
from unittest.mock import Mock, patch

import pytest
from PIL import Image
from torch import nn

from vlmeval.config import EvaluatorSettings
from vlmeval.errors import ArtifactMissingError, ImageRequiredError
from vlmeval.generation.engine import GenerateCompletionInfo, GenerationChunk
from vlmeval.generation.evaluator import (
    DEFAULT_SYSTEM_PROMPT,
    IMAGE_SYSTEM_PROMPT,
    VIDEO_SYSTEM_PROMPT,
    LoadState,
    VLMEvaluator,
)
from vlmeval.generation.user_input import MediaInput
from vlmeval.models.model_types import ModelConfiguration
from vlmeval.runtime.context import ModelContainer, ModelContext

PRESET = ModelConfiguration(id="test/model", default_prompt="Describe the image in English")


def _fake_generate(items, gate=None):
    async def _generate(model_input, parameters, context, cancellation=None):
        for item in items:
            if gate is not None:
                await gate.wait()
            yield item
    return _generate


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.fixture
def processor():
    processor = Mock()
    processor.prepare.return_value = {"input_ids": "ids"}
    return processor


@pytest.fixture
def factory(processor):
    context = ModelContext(PRESET, nn.Linear(1024, 1024, bias=False), processor, Mock())
    factory = Mock()
    factory.load_container.return_value = ModelContainer(context)
    factory.load_bundled_container.return_value = ModelContainer(context)
    return factory


@pytest.fixture
def settings():
    return EvaluatorSettings(apply_environment=False, update_interval=0.01)


@pytest.fixture
def evaluator(settings, factory):
    return VLMEvaluator(settings=settings, factory=factory, configuration=PRESET)


COMPLETED = [
    GenerationChunk("Hel"),
    GenerationChunk("lo"),
    GenerateCompletionInfo(prompt_token_count=5, generation_token_count=25,
                           prompt_time=0.1, generate_time=2.0),
]


class TestLoad:
    """Test cases for model loading."""

    @pytest.mark.asyncio
    async def test_load_is_memoized(self, evaluator, factory):
        first = await evaluator.load()
        second = await evaluator.load()

        assert first is second
        factory.load_container.assert_called_once()
        assert evaluator.load_state is LoadState.LOADED
        assert evaluator.model_info == "Loaded test/model. Weights: 1M"
        assert evaluator.prompt == "Describe the image in English"

    @pytest.mark.asyncio
    async def test_concurrent_first_loads_share_one_load(self, evaluator, factory):
        await asyncio.gather(evaluator.load(), evaluator.load())
        factory.load_container.assert_called_once()

    @pytest.mark.asyncio
    async def test_bundle_dir_uses_bundled_load(self, settings, factory):
        settings.bundle_dir = "/models/bundle"
        evaluator = VLMEvaluator(settings=settings, factory=factory, configuration=PRESET)

        await evaluator.load()

        factory.load_bundled_container.assert_called_once()
        assert factory.load_bundled_container.call_args.args[:2] == (PRESET, "/models/bundle")
        factory.load_container.assert_not_called()


class TestGenerate:
    """Test cases for generate()."""

    @pytest.mark.asyncio
    async def test_throttled_output_and_stat(self, evaluator):
        with patch("vlmeval.generation.evaluator.generate", _fake_generate(COMPLETED)):
            task = evaluator.generate(MediaInput.from_image(Image.new("RGB", (8, 8))))
            assert evaluator.running is True
            await task

        assert evaluator.output == "Hello"
        assert "12.5" in evaluator.stat
        assert evaluator.stat == "12.5 tokens/s"
        assert evaluator.running is False

    @pytest.mark.asyncio
    async def test_generate_while_running_is_ignored(self, evaluator, factory):
        gate = asyncio.Event()
        with patch("vlmeval.generation.evaluator.generate", _fake_generate(COMPLETED, gate)):
            task = evaluator.generate()
            assert evaluator.generate() is None
            gate.set()
            await task

        factory.load_container.assert_called_once()
        assert evaluator.output == "Hello"

    @pytest.mark.asyncio
    async def test_prompt_is_consumed(self, evaluator, processor):
        evaluator.prompt = "What color is it?"
        with patch("vlmeval.generation.evaluator.generate", _fake_generate(COMPLETED)):
            task = evaluator.generate(MediaInput.from_image(Image.new("RGB", (8, 8))))
            assert evaluator.prompt == ""
            await task

        user_input = processor.prepare.call_args.args[0]
        assert user_input.chat[0].content == IMAGE_SYSTEM_PROMPT
        assert user_input.chat[1].content == "What color is it?"
        assert len(user_input.chat[1].images) == 1
        assert user_input.processing.resize == (448, 448)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("media, expected", [
        (MediaInput.from_video("clip.mp4"), VIDEO_SYSTEM_PROMPT),
        (MediaInput.from_images([Image.new("RGB", (4, 4))] * 2), IMAGE_SYSTEM_PROMPT),
        (MediaInput(), DEFAULT_SYSTEM_PROMPT),
    ])
    async def test_system_prompt_by_media_kind(self, evaluator, processor, media, expected):
        with patch("vlmeval.generation.evaluator.generate", _fake_generate(COMPLETED)):
            await evaluator.generate(media)
        assert processor.prepare.call_args.args[0].chat[0].content == expected

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_output(self, evaluator):
        never = asyncio.Event()

        async def _stalling(model_input, parameters, context, cancellation=None):
            yield GenerationChunk("Hel")
            await never.wait()
            yield GenerationChunk("lo")

        with patch("vlmeval.generation.evaluator.generate", _stalling):
            task = evaluator.generate()
            await _wait_for(lambda: evaluator.output == "Hel")

            evaluator.cancel_generation()
            assert evaluator.running is False

            with pytest.raises(asyncio.CancelledError):
                await task

        assert evaluator.output == "Hel"
        assert evaluator.running is False

    @pytest.mark.asyncio
    async def test_chunks_after_cancel_are_not_appended(self, evaluator):
        produced = []

        async def _endless(model_input, parameters, context, cancellation=None):
            while True:
                produced.append("x")
                yield GenerationChunk("x")
                await asyncio.sleep(0.002)

        with patch("vlmeval.generation.evaluator.generate", _endless):
            task = evaluator.generate()
            await _wait_for(lambda: len(evaluator.output) >= 3)

            evaluator.cancel_generation()
            frozen = evaluator.output
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0.05)

        assert evaluator.output == frozen
        assert len(produced) >= len(frozen)
        assert evaluator.running is False

    @pytest.mark.asyncio
    async def test_processing_failure_becomes_output(self, evaluator, processor):
        processor.prepare.side_effect = ImageRequiredError()

        await evaluator.generate()

        assert evaluator.output == "Failed: An image is required for this operation."
        assert evaluator.running is False

    @pytest.mark.asyncio
    async def test_load_failure_becomes_output(self, evaluator, factory):
        factory.load_container.side_effect = ArtifactMissingError("tokenizer.json")

        await evaluator.generate()

        assert evaluator.output == "Failed: Unsupported model: tokenizer.json not found in bundle"
        assert evaluator.load_state is LoadState.IDLE

    @pytest.mark.asyncio
    async def test_listeners_notified(self, evaluator):
        snapshots = []
        evaluator.add_listener(lambda e: snapshots.append((e.running, e.output)))

        with patch("vlmeval.generation.evaluator.generate", _fake_generate(COMPLETED)):
            await evaluator.generate()

        assert snapshots[0] == (True, "")
        assert (True, "Hello") in snapshots
        assert snapshots[-1] == (False, "Hello")
