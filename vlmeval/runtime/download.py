"""Locate model artifacts locally or fetch them from the Hugging Face Hub."""

import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from huggingface_hub import snapshot_download
from tqdm.auto import tqdm

from ..models.model_types import ModelConfiguration

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[float], None]

# Everything the factory reads; skips framework-specific weights and large extras.
DEFAULT_ALLOW_PATTERNS = (
    "*.json",
    "*.safetensors",
    "*.jinja",
    "*.txt",
    "tokenizer.model",
)


class ProgressReporter:
    """Forwards completion fractions in [0, 1], never moving backwards."""

    def __init__(self, handler: Optional[ProgressHandler] = None):
        self.handler = handler
        self.fraction = 0.0
        self._reported = False

    def report(self, fraction: float) -> None:
        fraction = min(1.0, max(0.0, fraction))
        if self._reported and fraction <= self.fraction:
            return
        self.fraction = max(self.fraction, fraction)
        self._reported = True
        if self.handler is not None:
            self.handler(self.fraction)


def _tqdm_reporting_to(reporter: ProgressReporter):
    class _ReportingTqdm(tqdm):
        def update(self, n=1):
            displayed = super().update(n)
            if self.total:
                reporter.report(self.n / self.total)
            return displayed

    return _ReportingTqdm


class HubDownloader:
    """Resolves a preset to a local directory holding its artifacts."""

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        allow_patterns: Sequence[str] = DEFAULT_ALLOW_PATTERNS,
        revision: Optional[str] = None,
    ):
        self.cache_dir = cache_dir
        self.allow_patterns = list(allow_patterns)
        self.revision = revision

    def fetch(
        self,
        configuration: ModelConfiguration,
        on_progress: Optional[ProgressHandler] = None,
    ) -> Path:
        """
        Return the artifact directory for ``configuration``.

        Local directories are used as-is. Hub repositories are downloaded into
        the cache (or reused from it) with progress reported as the fraction of
        files fetched.
        """
        reporter = ProgressReporter(on_progress)
        if configuration.is_local_directory:
            logger.info("Using local model directory: %s", configuration.id)
            reporter.report(1.0)
            return Path(configuration.id)

        logger.info("Fetching %s from the Hugging Face Hub", configuration.id)
        path = snapshot_download(
            repo_id=configuration.id,
            revision=self.revision,
            cache_dir=self.cache_dir,
            allow_patterns=self.allow_patterns,
            tqdm_class=_tqdm_reporting_to(reporter),
        )
        reporter.report(1.0)
        logger.info("Model artifacts available at %s", path)
        return Path(path)
