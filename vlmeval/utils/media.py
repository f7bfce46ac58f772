"""Image and video loading helpers built on Pillow, OpenCV, and requests."""

import io
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np
import requests
from PIL import Image

logger = logging.getLogger(__name__)

# Shown when the user asks for a description without choosing any media.
DEFAULT_IMAGE_URL = (
    "https://huggingface.co/datasets/huggingface/documentation-images/resolve/main/bee.jpg"
)


def load_image(source: Union[str, Path], timeout: float = 30.0) -> Image.Image:
    """
    Load an RGB image from a local path or an http(s) URL.

    Args:
        source: File path or URL
        timeout: Request timeout in seconds for URLs

    Returns:
        PIL image in RGB mode
    """
    source = str(source)
    if source.startswith(("http://", "https://")):
        logger.info("Downloading image: %s", source)
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        image = Image.open(io.BytesIO(response.content))
    else:
        image = Image.open(source)
    return image.convert("RGB")


def resize_image(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Resize to a fixed (width, height)."""
    return image.convert("RGB").resize(size, Image.BICUBIC)


def frame_to_image(frame: np.ndarray) -> Image.Image:
    """Convert an OpenCV BGR frame to a PIL RGB image."""
    return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))


def load_video_frames(
    source: Union[str, Path],
    max_frames: int = 8,
    resize: Optional[Tuple[int, int]] = None,
) -> List[Image.Image]:
    """
    Decode up to ``max_frames`` evenly spaced frames from a video file.

    Args:
        source: Path to the video
        max_frames: Upper bound on the number of sampled frames
        resize: Optional (width, height) applied to every frame

    Returns:
        Frames in presentation order

    Raises:
        ValueError: If the video cannot be opened or yields no frames
    """
    capture = cv2.VideoCapture(str(source))
    if not capture.isOpened():
        raise ValueError(f"Cannot open video: {source}")

    frames: List[Image.Image] = []
    try:
        total = int(capture.get(cv2.CAP_PROP_FRAME_COUNT))
        if total > 0:
            indices = np.unique(np.linspace(0, total - 1, num=min(max_frames, total)).round().astype(int))
            for index in indices:
                capture.set(cv2.CAP_PROP_POS_FRAMES, int(index))
                ok, frame = capture.read()
                if ok:
                    frames.append(frame_to_image(frame))
        else:
            # Some containers do not report a frame count; read everything and subsample.
            decoded = []
            while True:
                ok, frame = capture.read()
                if not ok:
                    break
                decoded.append(frame)
            if decoded:
                indices = np.unique(np.linspace(0, len(decoded) - 1, num=min(max_frames, len(decoded))).round().astype(int))
                frames = [frame_to_image(decoded[i]) for i in indices]
    finally:
        capture.release()

    if not frames:
        raise ValueError(f"No frames decoded from video: {source}")

    if resize is not None:
        frames = [resize_image(frame, resize) for frame in frames]

    logger.debug("Decoded %d frames from %s", len(frames), source)
    return frames
