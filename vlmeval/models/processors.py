"""
Per-family user input processors.

A processor turns a ``UserInput`` (chat transcript plus media) into the tensor
batch a model's ``generate`` accepts. Families differ in which media they
accept and whether the prompt goes through a chat template.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from PIL import Image
from transformers import BatchFeature

from ..errors import (
    ImageProcessingError,
    ImageRequiredError,
    ProcessingError,
    SingleImageAllowedError,
    SingleMediaTypeAllowedError,
    SingleVideoAllowedError,
)
from ..generation.user_input import UserInput, VideoSource
from ..utils.media import load_video_frames, resize_image
from .configuration import BaseProcessorConfiguration

logger = logging.getLogger(__name__)


class UserInputProcessor(ABC):
    """Converts user input into model input."""

    @abstractmethod
    def prepare(self, user_input: UserInput) -> BatchFeature:
        """Prepare tensors for ``generate``."""


class TransformersInputProcessor(UserInputProcessor):
    """Input processor backed by a Hugging Face multimodal processor."""

    requires_image = False
    allows_multiple_images = True
    allows_video = True
    uses_chat_template = True
    max_video_frames = 8

    def __init__(
        self,
        configuration: Optional[BaseProcessorConfiguration],
        tokenizer: Any,
        processor: Any,
    ):
        self.configuration = configuration
        self.tokenizer = tokenizer
        self.processor = processor

    def validate(self, user_input: UserInput) -> None:
        """Check the media in ``user_input`` against this family's policy."""
        images = user_input.images
        videos = user_input.videos

        if images and videos:
            raise SingleMediaTypeAllowedError()
        if videos and not self.allows_video:
            raise ImageRequiredError()
        if len(videos) > 1:
            raise SingleVideoAllowedError()
        if len(images) > 1 and not self.allows_multiple_images:
            raise SingleImageAllowedError()
        if self.requires_image and not images:
            raise ImageRequiredError()

    def prepare(self, user_input: UserInput) -> BatchFeature:
        self.validate(user_input)

        images = self._prepare_images(user_input)
        videos = [self._prepare_video(video, user_input) for video in user_input.videos]
        prompt = self.render_prompt(user_input)

        kwargs: Dict[str, Any] = {"text": [prompt], "return_tensors": "pt"}
        if images:
            kwargs["images"] = images
        if videos:
            kwargs["videos"] = videos

        logger.debug(
            "Preparing input: %d images, %d videos, prompt length %d",
            len(images), len(videos), len(prompt),
        )
        try:
            return self.processor(**kwargs)
        except (ValueError, TypeError, KeyError, RuntimeError) as exc:
            raise ProcessingError(str(exc)) from exc

    def chat_messages(self, user_input: UserInput) -> List[Dict[str, Any]]:
        """Chat transcript in the structured form chat templates expect."""
        messages = []
        for message in user_input.chat:
            content: List[Dict[str, Any]] = [{"type": "image"} for _ in message.images]
            content.extend({"type": "video"} for _ in message.videos)
            content.append({"type": "text", "text": message.content})
            messages.append({"role": message.role, "content": content})
        return messages

    def render_prompt(self, user_input: UserInput) -> str:
        if not self.uses_chat_template:
            user_messages = [m for m in user_input.chat if m.role == "user"]
            return user_messages[-1].content if user_messages else ""
        try:
            return self.processor.apply_chat_template(
                self.chat_messages(user_input),
                tokenize=False,
                add_generation_prompt=True,
            )
        except (ValueError, TypeError, KeyError) as exc:
            raise ProcessingError(f"chat template: {exc}") from exc

    def _prepare_images(self, user_input: UserInput) -> List[Image.Image]:
        resize = user_input.processing.resize
        prepared = []
        for image in user_input.images:
            try:
                prepared.append(resize_image(image, resize) if resize else image.convert("RGB"))
            except (OSError, ValueError) as exc:
                raise ImageProcessingError(str(exc)) from exc
        return prepared

    def _prepare_video(self, video: VideoSource, user_input: UserInput) -> List[Image.Image]:
        try:
            return load_video_frames(
                video,
                max_frames=self.max_video_frames,
                resize=user_input.processing.resize,
            )
        except (OSError, ValueError) as exc:
            raise ProcessingError(str(exc)) from exc


class PaliGemmaInputProcessor(TransformersInputProcessor):
    """Exactly one image; the prompt is passed without a chat template."""

    requires_image = True
    allows_multiple_images = False
    allows_video = False
    uses_chat_template = False


class Gemma3InputProcessor(TransformersInputProcessor):
    allows_video = False


class Idefics3InputProcessor(TransformersInputProcessor):
    allows_video = False


class Qwen2VLInputProcessor(TransformersInputProcessor):
    pass


class Qwen25VLInputProcessor(TransformersInputProcessor):
    pass


class SmolVLMInputProcessor(TransformersInputProcessor):
    pass
