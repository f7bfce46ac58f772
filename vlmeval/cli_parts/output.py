"""CLI output helpers for streamed descriptions."""

import sys
from typing import TextIO


class StreamPrinter:
    """
    Evaluator listener that writes only the newly appended part of ``output``.

    When the output shrinks (a new generation started) the printer moves to a
    fresh line and starts over.
    """

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream
        self._printed = ""

    def __call__(self, evaluator) -> None:
        text = evaluator.output
        if not text.startswith(self._printed):
            if self._printed:
                self.stream.write("\n")
            self._printed = ""
        delta = text[len(self._printed):]
        if delta:
            self.stream.write(delta)
            self.stream.flush()
            self._printed = text

    def finish(self, evaluator) -> None:
        """End the current line and print the throughput stat."""
        if self._printed:
            self.stream.write("\n")
        if evaluator.stat:
            self.stream.write(f"[{evaluator.stat}]\n")
        self.stream.flush()
        self._printed = ""


def print_model_info(evaluator) -> None:
    print("=" * 80)
    print(evaluator.model_info)
    print(f"Prompt: {evaluator.prompt}")
    print("=" * 80)
