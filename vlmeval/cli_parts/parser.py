"""Argument parser construction for the vlmeval CLI."""

import argparse

EPILOG = """
Examples:
  # Show the preset catalog
  vlmeval list-models

  # Describe the sample image with the default model
  vlmeval describe

  # Describe local media with a specific preset
  vlmeval describe --model qwen2-vl-2b --image photo.jpg --prompt "What is in the picture?"
  vlmeval describe --model smolvlm2-500m-video --video clip.mp4

  # Run from a bundled model directory without network access
  vlmeval describe --bundle-dir ./models/smolvlm2 --image photo.jpg

  # Continuously describe what the camera sees
  vlmeval camera --device-index 0
"""


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", help="Preset name, Hugging Face repository id, or model directory")
    parser.add_argument("--bundle-dir", help="Load a bundled model directory instead of downloading")
    parser.add_argument("--cache-dir", help="Hugging Face cache directory")
    parser.add_argument("--device", choices=["auto", "cuda", "mps", "cpu"])
    parser.add_argument("--max-tokens", type=int)
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--top-p", type=float)
    parser.add_argument("--prompt", help="Prompt to use instead of the preset's default")
    parser.add_argument("--verbose", "-v", action="store_true")


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        description="Streamed vision-language model descriptions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    list_parser = subparsers.add_parser("list-models", help="List available model presets")
    list_parser.add_argument("--verbose", "-v", action="store_true")

    describe_parser = subparsers.add_parser("describe", help="Describe images or a video")
    _add_common_args(describe_parser)
    describe_parser.add_argument(
        "--image", action="append", help="Image path or URL (repeat for an image sequence)"
    )
    describe_parser.add_argument("--video", help="Video file path")

    camera_parser = subparsers.add_parser("camera", help="Describe camera frames continuously")
    _add_common_args(camera_parser)
    camera_parser.add_argument("--device-index", type=int, help="OpenCV camera index")
    camera_parser.add_argument(
        "--interval", type=float, help="Seconds between frame grabs and idle checks"
    )

    return parser
