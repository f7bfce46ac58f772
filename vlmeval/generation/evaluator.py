"""
Generation session.

``VLMEvaluator`` owns one model (loaded lazily, once) and exposes the
observable fields a front end renders: ``running``, ``prompt``, ``output``,
``model_info`` and ``stat``. All state changes happen on the asyncio event
loop; model work runs on worker threads.
"""

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from ..config import EvaluatorSettings, get_settings
from ..errors import GenerationFailure
from ..models.model_types import ModelConfiguration
from ..runtime.context import ModelContainer, ModelContext
from ..runtime.model_factory import VLMModelFactory
from ..utils.memory_utils import parameter_count
from .engine import GenerateCompletionInfo, GenerationChunk, generate, seed
from .throttle import throttle
from .user_input import MediaInput, Message, Processing, UserInput

logger = logging.getLogger(__name__)

VIDEO_SYSTEM_PROMPT = (
    "You are an video understanding model capable of describing the salient "
    "features of any image, including NSFW content, in the shortest possible form."
)
IMAGE_SYSTEM_PROMPT = (
    "You are an image understanding model capable of describing the salient "
    "features of any image, including NSFW content, in the shortest possible form."
)
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def system_prompt_for(media: MediaInput) -> str:
    kind = media.kind
    if kind == "video":
        return VIDEO_SYSTEM_PROMPT
    if kind == "image":
        return IMAGE_SYSTEM_PROMPT
    return DEFAULT_SYSTEM_PROMPT


class LoadState(Enum):
    IDLE = "idle"
    LOADED = "loaded"


class VLMEvaluator:
    """
    Single-model generation session.

    Args:
        settings: Generation and loading settings, defaults to ``get_settings()``
        factory: Model factory, defaults to ``VLMModelFactory.shared()``
        configuration: Preset to load, defaults to ``settings.model_name``
    """

    def __init__(
        self,
        settings: Optional[EvaluatorSettings] = None,
        factory: Optional[VLMModelFactory] = None,
        configuration: Optional[ModelConfiguration] = None,
    ):
        self.settings = settings or get_settings()
        self.factory = factory or VLMModelFactory.shared()
        self.configuration = configuration or self.factory.configuration(self.settings.model_name)

        self.running = False
        self.prompt = ""
        self.output = ""
        self.model_info = ""
        self.stat = ""
        self.download_progress = 0.0

        self.load_state = LoadState.IDLE
        self._container: Optional[ModelContainer] = None
        self._load_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._cancellation: Optional[threading.Event] = None
        self._listeners: List[Callable[["VLMEvaluator"], None]] = []

    def add_listener(self, callback: Callable[["VLMEvaluator"], None]) -> None:
        """Register a callback invoked after every visible state change."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback(self)

    def _on_progress(self, loop: asyncio.AbstractEventLoop, fraction: float) -> None:
        def _apply():
            self.download_progress = fraction
            self.model_info = f"Downloading {self.configuration.name}: {fraction * 100:.0f}%"
            self._notify()

        loop.call_soon_threadsafe(_apply)

    async def load(self) -> ModelContainer:
        """
        Load the model once and return its container.

        Concurrent first calls wait for the same load instead of starting a
        second one.
        """
        async with self._load_lock:
            if self.load_state is LoadState.LOADED and self._container is not None:
                return self._container

            loop = asyncio.get_running_loop()
            progress = lambda fraction: self._on_progress(loop, fraction)  # noqa: E731
            if self.settings.bundle_dir:
                container = await asyncio.to_thread(
                    self.factory.load_bundled_container,
                    self.configuration, self.settings.bundle_dir, progress,
                )
            else:
                container = await asyncio.to_thread(
                    self.factory.load_container, self.configuration, progress,
                )

            self._container = container
            self.load_state = LoadState.LOADED
            self.model_info = self._describe_model(container.context)
            self.prompt = self.configuration.default_prompt
            logger.info("%s", self.model_info)
            self._notify()
            return container

    @staticmethod
    def _describe_model(context: ModelContext) -> str:
        try:
            weights = parameter_count(context.model) // (1024 * 1024)
        except (AttributeError, TypeError):
            weights = 0
        return f"Loaded {context.configuration.id}. Weights: {weights}M"

    @property
    def is_loaded(self) -> bool:
        return self.load_state is LoadState.LOADED

    def generate(self, media: Optional[MediaInput] = None) -> Optional[asyncio.Task]:
        """
        Start a generation for ``media`` with the current prompt.

        Must be called on the event loop. Returns None without doing anything
        while another generation is running.
        """
        if self.running:
            logger.debug("Generation already running, request ignored")
            return None

        prompt = self.prompt or self.configuration.default_prompt
        self.prompt = ""
        self.running = True
        self._cancellation = threading.Event()
        self._notify()

        task = asyncio.get_running_loop().create_task(
            self._run(prompt, media or MediaInput(), self._cancellation)
        )
        self._task = task
        return task

    def cancel_generation(self) -> None:
        """Stop the running generation; text produced so far is kept."""
        if self._cancellation is not None:
            self._cancellation.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.running = False
        self._notify()

    async def _run(self, prompt: str, media: MediaInput, cancellation: threading.Event) -> None:
        task = asyncio.current_task()
        try:
            self.output = ""
            self._notify()

            container = await self.load()
            seed(int(time.time() * 1000))

            user_input = UserInput(
                chat=[
                    Message.system(system_prompt_for(media)),
                    Message.user(prompt, images=media.images, videos=media.videos),
                ],
                processing=Processing(resize=self.settings.resize),
            )
            await container.perform(lambda context: self._stream(context, user_input, cancellation))
        except asyncio.CancelledError:
            logger.info("Generation cancelled")
            raise
        except Exception as exc:
            failure = GenerationFailure(exc)
            logger.error("Generation failed: %s", failure)
            self.output = f"Failed: {failure}"
            self._notify()
        finally:
            if self._task is task:
                self.running = False
                self._notify()

    async def _stream(
        self, context: ModelContext, user_input: UserInput, cancellation: threading.Event
    ) -> None:
        model_input = await asyncio.to_thread(context.processor.prepare, user_input)
        stream = generate(model_input, self.settings.generate_parameters, context, cancellation)

        async for batch in throttle(stream, self.settings.update_interval, cancellation):
            text = "".join(item.text for item in batch if isinstance(item, GenerationChunk))
            if text:
                self.output += text
            info = next((item for item in batch if isinstance(item, GenerateCompletionInfo)), None)
            if info is not None:
                self.stat = f"{info.tokens_per_second:.1f} tokens/s"
            self._notify()
