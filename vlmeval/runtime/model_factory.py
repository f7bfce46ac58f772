"""
Model factory: turns a preset into a ready-to-use ``ModelContext``.

Loading follows a fixed sequence: locate artifacts, decode ``config.json``,
build the model for its ``model_type``, apply weights, load the tokenizer,
decode ``preprocessor_config.json`` and build the processor for its
``processor_class``. Any failure aborts the whole load; nothing partial is
returned and memory held by the partial model is released.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional, Union

import torch

from ..errors import ArtifactMissingError, ConfigurationDecodingError, DecodingError
from ..models.configuration import BaseConfiguration, BaseProcessorConfiguration, decode_configuration
from ..models.model_queries import resolve_model_config
from ..models.model_types import ModelConfiguration
from ..models.type_registry import (
    ModelTypeRegistry,
    ProcessorTypeRegistry,
    shared_model_type_registry,
    shared_processor_type_registry,
)
from ..utils.memory_utils import MemoryMonitor, select_device
from .context import ModelContainer, ModelContext
from .download import HubDownloader, ProgressHandler
from .tokenizer import load_bundled_tokenizer, load_tokenizer
from .weights import load_weights

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
PREPROCESSOR_CONFIG_FILE = "preprocessor_config.json"

# Checked in this order; the first absent file is reported.
REQUIRED_BUNDLE_FILES = (
    CONFIG_FILE,
    PREPROCESSOR_CONFIG_FILE,
    "tokenizer.json",
    "tokenizer_config.json",
    "model.safetensors",
)


@contextmanager
def _decoding(file_name: str, configuration: ModelConfiguration):
    try:
        yield
    except DecodingError as exc:
        raise ConfigurationDecodingError(file_name, configuration.name, exc.cause) from exc


class VLMModelFactory:
    """Builds model contexts from presets using the type registries."""

    _shared: Optional["VLMModelFactory"] = None

    def __init__(
        self,
        type_registry: Optional[ModelTypeRegistry] = None,
        processor_registry: Optional[ProcessorTypeRegistry] = None,
        downloader: Optional[HubDownloader] = None,
        memory_monitor: Optional[MemoryMonitor] = None,
        device: Optional[str] = None,
    ):
        self.type_registry = type_registry or shared_model_type_registry
        self.processor_registry = processor_registry or shared_processor_type_registry
        self.downloader = downloader or HubDownloader()
        self.memory_monitor = memory_monitor or MemoryMonitor()
        self.device = select_device(device)

    @classmethod
    def shared(cls) -> "VLMModelFactory":
        """Process-wide factory over the shared registries."""
        if cls._shared is None:
            cls._shared = cls()
        return cls._shared

    def configuration(self, model_id: str) -> ModelConfiguration:
        """Resolve a catalog name, repository id, or directory to a preset."""
        return resolve_model_config(model_id)

    def load(
        self,
        configuration: ModelConfiguration,
        progress_handler: Optional[ProgressHandler] = None,
        hub: Optional[HubDownloader] = None,
    ) -> ModelContext:
        """
        Download (or locate) and assemble the model for ``configuration``.

        Args:
            configuration: Preset to load
            progress_handler: Receives download completion fractions in [0, 1]
            hub: Downloader overriding the factory's own

        Raises:
            ModelFactoryError: On decoding, dispatch, or weight failures
            FileNotFoundError: If a configuration document is absent
        """
        directory = (hub or self.downloader).fetch(configuration, progress_handler)
        return self._assemble(
            configuration, Path(directory), lambda: load_tokenizer(configuration, directory)
        )

    def load_bundled(
        self,
        configuration: ModelConfiguration,
        directory: Union[str, Path],
        progress_handler: Optional[ProgressHandler] = None,
    ) -> ModelContext:
        """
        Assemble a model shipped in a local directory without network access.

        Raises:
            ArtifactMissingError: For the first required file that is absent
        """
        directory = Path(directory)
        for file_name in REQUIRED_BUNDLE_FILES:
            if not (directory / file_name).exists():
                raise ArtifactMissingError(file_name, str(directory))

        context = self._assemble(configuration, directory, lambda: load_bundled_tokenizer(directory))
        if progress_handler is not None:
            progress_handler(1.0)
        return context

    def load_container(
        self,
        configuration: ModelConfiguration,
        progress_handler: Optional[ProgressHandler] = None,
        hub: Optional[HubDownloader] = None,
    ) -> ModelContainer:
        return ModelContainer(self.load(configuration, progress_handler, hub))

    def load_bundled_container(
        self,
        configuration: ModelConfiguration,
        directory: Union[str, Path],
        progress_handler: Optional[ProgressHandler] = None,
    ) -> ModelContainer:
        return ModelContainer(self.load_bundled(configuration, directory, progress_handler))

    def _assemble(
        self,
        configuration: ModelConfiguration,
        directory: Path,
        tokenizer_loader: Callable[[], Any],
    ) -> ModelContext:
        self.memory_monitor.log_memory_usage("Before model loading", logger)
        logger.info("Loading model: %s (%s)", configuration.name, directory)

        model = None
        try:
            config_path = directory / CONFIG_FILE
            with _decoding(CONFIG_FILE, configuration):
                base = decode_configuration(config_path, BaseConfiguration)
                model = self.type_registry.create_model(config_path, base.model_type)

            model = load_weights(directory, model, base.per_layer_quantization)
            if isinstance(model, torch.nn.Module):
                model = model.to(self.device)

            tokenizer = tokenizer_loader()

            processor_path = directory / PREPROCESSOR_CONFIG_FILE
            with _decoding(PREPROCESSOR_CONFIG_FILE, configuration):
                processor_base = decode_configuration(processor_path, BaseProcessorConfiguration)
                processor = self.processor_registry.create_processor(
                    processor_path, processor_base.processor_class, tokenizer
                )

            self.memory_monitor.check_memory_limit(f"loading {configuration.name}")
        except Exception:
            logger.error("Failed to load %s", configuration.name)
            del model
            self.memory_monitor.cleanup_gpu_memory()
            raise

        self.memory_monitor.log_memory_usage("After model loading", logger)
        logger.info("Successfully loaded %s (%s, %s)", configuration.name, base.model_type, self.device)
        return ModelContext(
            configuration=configuration,
            model=model,
            processor=processor,
            tokenizer=tokenizer,
        )
