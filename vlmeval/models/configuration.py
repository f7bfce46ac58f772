"""
Configuration schemas for model and processor families.

Each artifact directory carries a ``config.json`` whose ``model_type`` names the
model family and a ``preprocessor_config.json`` whose ``processor_class`` names
the processor family. The base schemas below decode only that envelope (plus
quantization metadata); the family schemas add the fields each family needs.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import DecodingError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LayerQuantization(BaseModel):
    """Bit width and group size used to pack one layer's weights."""

    group_size: int = 64
    bits: int = 4


class QuantizationDescriptor(BaseModel):
    """
    Per-layer quantization metadata.

    The JSON form is flat: ``group_size`` and ``bits`` give the default, and any
    other key is a layer path mapped either to its own ``{group_size, bits}`` or
    to ``false`` when that layer is stored unquantized.
    """

    group_size: int = 64
    bits: int = 4
    per_layer: Dict[str, Optional[LayerQuantization]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_layer_overrides(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        per_layer = dict(data.pop("per_layer", None) or {})
        for key in list(data):
            if key in ("group_size", "bits"):
                continue
            value = data.pop(key)
            if value is False or value is None:
                per_layer[key] = None
            elif isinstance(value, dict):
                per_layer[key] = value
            # Scalar metadata such as "quant_method" is informational only.
        data["per_layer"] = per_layer
        return data

    def quantization_for(self, layer_path: str) -> Optional[LayerQuantization]:
        """Quantization applied to ``layer_path``, or None if stored unquantized."""
        if layer_path in self.per_layer:
            return self.per_layer[layer_path]
        return LayerQuantization(group_size=self.group_size, bits=self.bits)


class BaseConfiguration(BaseModel):
    """Envelope shared by every ``config.json``."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model_type: str
    quantization: Optional[QuantizationDescriptor] = None
    quantization_config: Optional[QuantizationDescriptor] = None
    torch_dtype: Optional[str] = None

    @property
    def per_layer_quantization(self) -> Optional[QuantizationDescriptor]:
        return self.quantization or self.quantization_config

    def to_transformers_dict(self) -> Dict[str, Any]:
        """Fields present in the document, minus the quantization metadata."""
        return self.model_dump(
            exclude_unset=True, exclude={"quantization", "quantization_config"}
        )


class BaseProcessorConfiguration(BaseModel):
    """Envelope shared by every ``preprocessor_config.json``."""

    model_config = ConfigDict(extra="allow")

    processor_class: str


# ---------------------------------------------------------------------------
# Model families
# ---------------------------------------------------------------------------

class _VisionLanguageConfiguration(BaseConfiguration):
    vision_config: Dict[str, Any]
    text_config: Optional[Dict[str, Any]] = None


class PaliGemmaConfiguration(_VisionLanguageConfiguration):
    model_type: Literal["paligemma"]
    image_token_index: Optional[int] = None
    projection_dim: Optional[int] = None


class Qwen2VLConfiguration(_VisionLanguageConfiguration):
    model_type: Literal["qwen2_vl"]
    image_token_id: Optional[int] = None
    video_token_id: Optional[int] = None


class Qwen25VLConfiguration(_VisionLanguageConfiguration):
    model_type: Literal["qwen2_5_vl"]
    image_token_id: Optional[int] = None
    video_token_id: Optional[int] = None


class Idefics3Configuration(_VisionLanguageConfiguration):
    model_type: Literal["idefics3"]
    image_token_id: Optional[int] = None
    scale_factor: Optional[int] = None


class Gemma3Configuration(_VisionLanguageConfiguration):
    model_type: Literal["gemma3"]
    mm_tokens_per_image: Optional[int] = None
    image_token_index: Optional[int] = None


class SmolVLMConfiguration(_VisionLanguageConfiguration):
    model_type: Literal["smolvlm"]
    image_token_id: Optional[int] = None
    scale_factor: Optional[int] = None


MODEL_CONFIGURATION_SCHEMAS: Dict[str, Type[BaseConfiguration]] = {
    "paligemma": PaliGemmaConfiguration,
    "qwen2_vl": Qwen2VLConfiguration,
    "qwen2_5_vl": Qwen25VLConfiguration,
    "idefics3": Idefics3Configuration,
    "gemma3": Gemma3Configuration,
    "smolvlm": SmolVLMConfiguration,
}


# ---------------------------------------------------------------------------
# Processor families
# ---------------------------------------------------------------------------

class _ImageProcessorConfiguration(BaseProcessorConfiguration):
    image_mean: List[float]
    image_std: List[float]
    do_resize: bool = True
    size: Optional[Dict[str, int]] = None


class PaliGemmaProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["PaliGemmaProcessor"]


class Qwen2VLProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["Qwen2VLProcessor"]
    patch_size: int = 14
    merge_size: int = 2
    temporal_patch_size: int = 2
    min_pixels: Optional[int] = None
    max_pixels: Optional[int] = None


class Qwen25VLProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["Qwen2_5_VLProcessor"]
    patch_size: int = 14
    merge_size: int = 2
    temporal_patch_size: int = 2
    min_pixels: Optional[int] = None
    max_pixels: Optional[int] = None


class Idefics3ProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["Idefics3Processor"]
    max_image_size: Optional[Dict[str, int]] = None
    do_image_splitting: bool = True


class Gemma3ProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["Gemma3Processor"]
    do_pan_and_scan: Optional[bool] = None


class SmolVLMProcessorConfiguration(_ImageProcessorConfiguration):
    processor_class: Literal["SmolVLMProcessor"]
    max_image_size: Optional[Dict[str, int]] = None
    do_image_splitting: bool = True
    video_sampling: Optional[Dict[str, Any]] = None


PROCESSOR_CONFIGURATION_SCHEMAS: Dict[str, Type[BaseProcessorConfiguration]] = {
    "PaliGemmaProcessor": PaliGemmaProcessorConfiguration,
    "Qwen2VLProcessor": Qwen2VLProcessorConfiguration,
    "Qwen2_5_VLProcessor": Qwen25VLProcessorConfiguration,
    "Idefics3Processor": Idefics3ProcessorConfiguration,
    "Gemma3Processor": Gemma3ProcessorConfiguration,
    "SmolVLMProcessor": SmolVLMProcessorConfiguration,
}


def decode_configuration(path: Union[str, Path], schema: Type[SchemaT]) -> SchemaT:
    """
    Read a JSON configuration document and validate it against ``schema``.

    Args:
        path: Location of the JSON document
        schema: Pydantic model describing the expected shape

    Returns:
        The decoded configuration

    Raises:
        DecodingError: If the document is not valid JSON or does not match the schema
        FileNotFoundError: If the document does not exist
    """
    path = Path(path)
    data = path.read_bytes()
    try:
        return schema.model_validate_json(data.decode("utf-8"))
    except (UnicodeDecodeError, ValidationError) as exc:
        raise DecodingError(path.name, exc) from exc
