"""
Model and processor type registries.

Each registry maps a family tag (``model_type`` from ``config.json`` or
``processor_class`` from ``preprocessor_config.json``) to a builder that
decodes the family schema and constructs the object. Registering a tag a
second time replaces the earlier builder.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from transformers import (
    AutoImageProcessor,
    AutoVideoProcessor,
    Gemma3Config,
    Gemma3ForConditionalGeneration,
    Gemma3Processor,
    Idefics3Config,
    Idefics3ForConditionalGeneration,
    Idefics3Processor,
    PaliGemmaConfig,
    PaliGemmaForConditionalGeneration,
    PaliGemmaProcessor,
    Qwen2_5_VLConfig,
    Qwen2_5_VLForConditionalGeneration,
    Qwen2_5_VLProcessor,
    Qwen2VLConfig,
    Qwen2VLForConditionalGeneration,
    Qwen2VLProcessor,
    SmolVLMConfig,
    SmolVLMForConditionalGeneration,
    SmolVLMProcessor,
)

from ..errors import UnsupportedModelTypeError, UnsupportedProcessorTypeError
from .configuration import (
    MODEL_CONFIGURATION_SCHEMAS,
    PROCESSOR_CONFIGURATION_SCHEMAS,
    BaseConfiguration,
    BaseProcessorConfiguration,
    decode_configuration,
)
from .processors import (
    Gemma3InputProcessor,
    Idefics3InputProcessor,
    PaliGemmaInputProcessor,
    Qwen25VLInputProcessor,
    Qwen2VLInputProcessor,
    SmolVLMInputProcessor,
    TransformersInputProcessor,
    UserInputProcessor,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ModelBuilder(ABC):
    """Builds an unweighted model from a ``config.json`` path."""

    @abstractmethod
    def build(self, configuration_path: Path) -> Any:
        ...


class ProcessorBuilder(ABC):
    """Builds an input processor from a ``preprocessor_config.json`` path."""

    @abstractmethod
    def build(self, configuration_path: Path, tokenizer: Any) -> UserInputProcessor:
        ...


class TransformersModelBuilder(ModelBuilder):
    """Decode the family schema and instantiate a transformers model class."""

    def __init__(
        self,
        schema: Type[BaseConfiguration],
        config_class: Any,
        model_class: Any,
    ):
        self.schema = schema
        self.config_class = config_class
        self.model_class = model_class

    def build(self, configuration_path: Path) -> Any:
        configuration = decode_configuration(configuration_path, self.schema)
        config = self.config_class.from_dict(configuration.to_transformers_dict())
        model = self.model_class(config)
        model.eval()
        return model


def load_chat_template(directory: Path, tokenizer: Any) -> Optional[str]:
    """Chat template from the artifact directory, falling back to the tokenizer's."""
    json_path = directory / "chat_template.json"
    if json_path.exists():
        return json.loads(json_path.read_text(encoding="utf-8")).get("chat_template")
    jinja_path = directory / "chat_template.jinja"
    if jinja_path.exists():
        return jinja_path.read_text(encoding="utf-8")
    return getattr(tokenizer, "chat_template", None)


class TransformersProcessorBuilder(ProcessorBuilder):
    """
    Assemble a transformers processor around a tokenizer and wrap it in the
    family's input processor.

    Args:
        schema: Family schema for ``preprocessor_config.json``
        processor_class: transformers processor class
        input_processor_class: Family ``TransformersInputProcessor`` subclass
        uses_video_processor: Whether the family also needs a video processor
        processor_keys: Extra constructor arguments read from ``processor_config.json``
    """

    def __init__(
        self,
        schema: Type[BaseProcessorConfiguration],
        processor_class: Any,
        input_processor_class: Type[TransformersInputProcessor],
        uses_video_processor: bool = False,
        processor_keys: Sequence[str] = (),
    ):
        self.schema = schema
        self.processor_class = processor_class
        self.input_processor_class = input_processor_class
        self.uses_video_processor = uses_video_processor
        self.processor_keys = tuple(processor_keys)

    def build(self, configuration_path: Path, tokenizer: Any) -> UserInputProcessor:
        configuration_path = Path(configuration_path)
        configuration = decode_configuration(configuration_path, self.schema)
        directory = configuration_path.parent

        components: Dict[str, Any] = {
            "image_processor": AutoImageProcessor.from_pretrained(directory, local_files_only=True),
        }
        if self.uses_video_processor:
            components["video_processor"] = AutoVideoProcessor.from_pretrained(
                directory, local_files_only=True
            )
        components.update(self._processor_options(directory))

        processor = self.processor_class(
            tokenizer=tokenizer,
            chat_template=load_chat_template(directory, tokenizer),
            **components,
        )
        return self.input_processor_class(configuration, tokenizer, processor)

    def _processor_options(self, directory: Path) -> Dict[str, Any]:
        path = directory / "processor_config.json"
        if not self.processor_keys or not path.exists():
            return {}
        options = json.loads(path.read_text(encoding="utf-8"))
        return {key: options[key] for key in self.processor_keys if key in options}


class ModelTypeRegistry:
    """Maps ``model_type`` tags to model builders."""

    def __init__(self, builders: Optional[Dict[str, ModelBuilder]] = None):
        self._builders: Dict[str, ModelBuilder] = dict(builders or {})

    def register(self, model_type: str, builder: ModelBuilder) -> None:
        if model_type in self._builders:
            logger.debug("Replacing builder for model type %s", model_type)
        self._builders[model_type] = builder

    @property
    def model_types(self) -> List[str]:
        return sorted(self._builders)

    def __contains__(self, model_type: object) -> bool:
        return model_type in self._builders

    def create_model(self, configuration_path: PathLike, model_type: str) -> Any:
        """
        Build an unweighted model for ``model_type``.

        Raises:
            UnsupportedModelTypeError: If no builder is registered for the tag
            DecodingError: If the document does not match the family schema
        """
        builder = self._builders.get(model_type)
        if builder is None:
            raise UnsupportedModelTypeError(model_type)
        logger.info("Building %s model from %s", model_type, configuration_path)
        return builder.build(Path(configuration_path))


class ProcessorTypeRegistry:
    """Maps ``processor_class`` tags to processor builders."""

    def __init__(self, builders: Optional[Dict[str, ProcessorBuilder]] = None):
        self._builders: Dict[str, ProcessorBuilder] = dict(builders or {})

    def register(self, processor_type: str, builder: ProcessorBuilder) -> None:
        if processor_type in self._builders:
            logger.debug("Replacing builder for processor type %s", processor_type)
        self._builders[processor_type] = builder

    @property
    def processor_types(self) -> List[str]:
        return sorted(self._builders)

    def __contains__(self, processor_type: object) -> bool:
        return processor_type in self._builders

    def create_processor(
        self, configuration_path: PathLike, processor_type: str, tokenizer: Any
    ) -> UserInputProcessor:
        builder = self._builders.get(processor_type)
        if builder is None:
            raise UnsupportedProcessorTypeError(processor_type)
        logger.info("Building %s from %s", processor_type, configuration_path)
        return builder.build(Path(configuration_path), tokenizer)


# model_type -> (transformers config class, model class)
MODEL_CLASSES: Dict[str, tuple] = {
    "paligemma": (PaliGemmaConfig, PaliGemmaForConditionalGeneration),
    "qwen2_vl": (Qwen2VLConfig, Qwen2VLForConditionalGeneration),
    "qwen2_5_vl": (Qwen2_5_VLConfig, Qwen2_5_VLForConditionalGeneration),
    "idefics3": (Idefics3Config, Idefics3ForConditionalGeneration),
    "gemma3": (Gemma3Config, Gemma3ForConditionalGeneration),
    "smolvlm": (SmolVLMConfig, SmolVLMForConditionalGeneration),
}

# processor_class -> (transformers processor class, input processor, builder options)
PROCESSOR_CLASSES: Dict[str, tuple] = {
    "PaliGemmaProcessor": (PaliGemmaProcessor, PaliGemmaInputProcessor, {}),
    "Qwen2VLProcessor": (
        Qwen2VLProcessor, Qwen2VLInputProcessor, {"uses_video_processor": True}
    ),
    "Qwen2_5_VLProcessor": (
        Qwen2_5_VLProcessor, Qwen25VLInputProcessor, {"uses_video_processor": True}
    ),
    "Idefics3Processor": (
        Idefics3Processor, Idefics3InputProcessor, {"processor_keys": ("image_seq_len",)}
    ),
    "Gemma3Processor": (
        Gemma3Processor, Gemma3InputProcessor, {"processor_keys": ("image_seq_length",)}
    ),
    "SmolVLMProcessor": (
        SmolVLMProcessor,
        SmolVLMInputProcessor,
        {"uses_video_processor": True, "processor_keys": ("image_seq_len",)},
    ),
}


def default_model_type_registry() -> ModelTypeRegistry:
    """Registry holding every model family known to this package."""
    return ModelTypeRegistry({
        model_type: TransformersModelBuilder(schema, *MODEL_CLASSES[model_type])
        for model_type, schema in MODEL_CONFIGURATION_SCHEMAS.items()
    })


def default_processor_type_registry() -> ProcessorTypeRegistry:
    """Registry holding every processor family known to this package."""
    builders = {}
    for processor_type, schema in PROCESSOR_CONFIGURATION_SCHEMAS.items():
        processor_class, input_processor_class, options = PROCESSOR_CLASSES[processor_type]
        builders[processor_type] = TransformersProcessorBuilder(
            schema, processor_class, input_processor_class, **options
        )
    return ProcessorTypeRegistry(builders)



shared_model_type_registry = default_model_type_registry()
shared_processor_type_registry = default_processor_type_registry()
