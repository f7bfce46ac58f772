"""Shared CLI helpers: logging, settings, media selection, and model listing."""

import argparse
import logging
import sys
from typing import Optional

from ..config import EvaluatorSettings, get_settings
from ..generation.user_input import MediaInput
from ..models.model_queries import get_available_models
from ..models.model_registry import DEFAULT_MODEL_NAME
from ..utils.media import DEFAULT_IMAGE_URL, load_image

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = "vlmeval.log") -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("transformers").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("huggingface_hub").setLevel(logging.WARNING)


def settings_from_args(args: argparse.Namespace) -> EvaluatorSettings:
    """Process settings with any flags given on the command line applied."""
    return get_settings().override(
        model_name=getattr(args, "model", None),
        cache_dir=getattr(args, "cache_dir", None),
        bundle_dir=getattr(args, "bundle_dir", None),
        max_tokens=getattr(args, "max_tokens", None),
        temperature=getattr(args, "temperature", None),
        top_p=getattr(args, "top_p", None),
        device=getattr(args, "device", None),
        camera_index=getattr(args, "device_index", None),
        capture_interval=getattr(args, "interval", None),
        verbose=getattr(args, "verbose", None) or None,
    )


def build_media(args: argparse.Namespace, parser: argparse.ArgumentParser) -> MediaInput:
    """Media for ``describe``: images, a video, or the sample image when neither is given."""
    images = getattr(args, "image", None) or []
    video = getattr(args, "video", None)
    if images and video:
        parser.error("Use either --image or --video, not both")

    if video:
        return MediaInput.from_video(video)
    if images:
        return MediaInput.from_images([load_image(source) for source in images])

    logger.info("No media given, using sample image %s", DEFAULT_IMAGE_URL)
    return MediaInput.from_image(load_image(DEFAULT_IMAGE_URL))


def print_available_models() -> None:
    """Print the preset catalog."""
    models = get_available_models()
    print("Available Models:")
    print("-" * 100)
    print(f"{'Model Name':<22} {'Extra EOS':<16} {'Repository'}")
    print("-" * 100)

    for name, config in models.items():
        marker = "*" if name == DEFAULT_MODEL_NAME else " "
        extra = ",".join(sorted(config.extra_eos_tokens)) or "-"
        print(f"{name + marker:<22} {extra:<16} {config.id}")

    print(f"\nTotal models: {len(models)} (* = default)")
    print("Any Hugging Face repository id or local model directory may also be passed to --model.")
