"""Chat transcript and media input datatypes."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from PIL import Image

VideoSource = Union[str, Path]


@dataclass
class Message:
    """One chat message, optionally carrying media."""

    role: str
    content: str
    images: List[Image.Image] = field(default_factory=list)
    videos: List[VideoSource] = field(default_factory=list)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(
        cls,
        content: str,
        images: Sequence[Image.Image] = (),
        videos: Sequence[VideoSource] = (),
    ) -> "Message":
        return cls(role="user", content=content, images=list(images), videos=list(videos))


@dataclass
class Processing:
    """Preprocessing applied to media before it reaches the processor."""

    resize: Optional[Tuple[int, int]] = None  # (width, height)


@dataclass
class UserInput:
    """A chat transcript plus processing options."""

    chat: List[Message]
    processing: Processing = field(default_factory=Processing)

    @property
    def images(self) -> List[Image.Image]:
        return [image for message in self.chat for image in message.images]

    @property
    def videos(self) -> List[VideoSource]:
        return [video for message in self.chat for video in message.videos]


@dataclass
class MediaInput:
    """
    Media attached to a generate request: one image, one video, or an ordered
    sequence of images. Callers are responsible for supplying a single kind.
    """

    images: List[Image.Image] = field(default_factory=list)
    video: Optional[VideoSource] = None

    @classmethod
    def from_image(cls, image: Image.Image) -> "MediaInput":
        return cls(images=[image])

    @classmethod
    def from_images(cls, images: Sequence[Image.Image]) -> "MediaInput":
        return cls(images=list(images))

    @classmethod
    def from_video(cls, video: VideoSource) -> "MediaInput":
        return cls(video=video)

    @property
    def kind(self) -> str:
        if self.video is not None:
            return "video"
        if self.images:
            return "image"
        return "none"

    @property
    def videos(self) -> List[VideoSource]:
        return [self.video] if self.video is not None else []
