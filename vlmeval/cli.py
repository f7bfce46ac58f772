"""Command-line interface for streamed VLM descriptions."""

import asyncio
import logging
import sys
from typing import List, Optional

from .capture import CameraCapture
from .cli_parts.common import build_media, print_available_models, settings_from_args, setup_logging
from .cli_parts.output import StreamPrinter, print_model_info
from .cli_parts.parser import create_parser
from .errors import ModelFactoryError
from .generation.evaluator import VLMEvaluator
from .generation.user_input import MediaInput
from .runtime.download import HubDownloader
from .runtime.model_factory import VLMModelFactory
from .utils.memory_utils import MemoryMonitor

logger = logging.getLogger(__name__)


def build_evaluator(settings) -> VLMEvaluator:
    factory = VLMModelFactory(
        downloader=HubDownloader(cache_dir=settings.cache_dir),
        memory_monitor=MemoryMonitor(gpu_memory_limit_gb=settings.memory_limit_gb),
        device=settings.device,
    )
    return VLMEvaluator(settings=settings, factory=factory)


async def camera_watchdog(
    evaluator: VLMEvaluator,
    capture: CameraCapture,
    interval: float = 0.5,
    prompt: Optional[str] = None,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Start a generation whenever the evaluator is idle and a new frame exists."""
    stop = stop or asyncio.Event()
    while not stop.is_set():
        if not evaluator.running:
            frame = capture.take_latest()
            if frame is not None:
                if prompt:
                    evaluator.prompt = prompt
                evaluator.generate(MediaInput.from_image(frame))
        await asyncio.sleep(interval)


async def run_describe(args, parser, settings) -> int:
    media = build_media(args, parser)
    evaluator = build_evaluator(settings)
    printer = StreamPrinter()

    await evaluator.load()
    if args.prompt:
        evaluator.prompt = args.prompt
    print_model_info(evaluator)

    evaluator.add_listener(printer)
    task = evaluator.generate(media)
    if task is not None:
        await task
    printer.finish(evaluator)
    return 1 if evaluator.output.startswith("Failed:") else 0


async def run_camera(args, settings) -> int:
    evaluator = build_evaluator(settings)
    printer = StreamPrinter()

    await evaluator.load()
    prompt = args.prompt or evaluator.prompt
    print_model_info(evaluator)

    evaluator.add_listener(printer)

    capture = CameraCapture(settings.camera_index, settings.capture_interval)
    capture.start()
    try:
        await camera_watchdog(evaluator, capture, settings.capture_interval, prompt)
    finally:
        evaluator.cancel_generation()
        capture.stop()
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = settings_from_args(args)
    setup_logging(settings.verbose, settings.log_file)

    if args.command == "list-models":
        print_available_models()
        return 0

    try:
        if args.command == "describe":
            return await run_describe(args, parser, settings)
        return await run_camera(args, settings)
    except ModelFactoryError as e:
        logger.error("Model loading failed: %s", e)
        print(f"\nError: {e}")
        return 1
    except Exception as e:
        logger.error("Command failed: %s", e)
        print(f"\nError: {e}")
        return 1


def cli_entry_point() -> None:
    """Entry point for setuptools console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_point()
