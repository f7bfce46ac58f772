"""Catalog of supported VLM presets."""

from typing import Dict

from .model_types import ModelConfiguration


PALIGEMMA_3B_MIX_448 = ModelConfiguration(
    id="google/paligemma-3b-mix-448",
    default_prompt="Describe the image in English",
)

QWEN2_VL_2B_INSTRUCT = ModelConfiguration(
    id="Qwen/Qwen2-VL-2B-Instruct",
    default_prompt="Describe the image in English",
)

QWEN2_5_VL_3B_INSTRUCT = ModelConfiguration(
    id="Qwen/Qwen2.5-VL-3B-Instruct",
    default_prompt="Describe the image in English",
)

SMOLVLM_INSTRUCT = ModelConfiguration(
    id="HuggingFaceTB/SmolVLM-Instruct",
    default_prompt="Describe the image in English",
)

GEMMA3_4B_IT = ModelConfiguration(
    id="google/gemma-3-4b-it",
    default_prompt="Describe the image in English",
    extra_eos_tokens=frozenset({"<end_of_turn>"}),
)

GEMMA3_12B_IT = ModelConfiguration(
    id="google/gemma-3-12b-it",
    default_prompt="Describe the image in English",
    extra_eos_tokens=frozenset({"<end_of_turn>"}),
)

GEMMA3_27B_IT = ModelConfiguration(
    id="google/gemma-3-27b-it",
    default_prompt="Describe the image in English",
    extra_eos_tokens=frozenset({"<end_of_turn>"}),
)

# Small enough unquantized to run on most devices; also the bundled default.
SMOLVLM2_500M_VIDEO = ModelConfiguration(
    id="HuggingFaceTB/SmolVLM2-500M-Video-Instruct",
    default_prompt=(
        "What is the main action or notable event happening in this segment? "
        "Describe it in one brief sentence."
    ),
)


AVAILABLE_MODELS: Dict[str, ModelConfiguration] = {
    "paligemma-3b-mix-448": PALIGEMMA_3B_MIX_448,
    "qwen2-vl-2b": QWEN2_VL_2B_INSTRUCT,
    "qwen2.5-vl-3b": QWEN2_5_VL_3B_INSTRUCT,
    "smolvlm-instruct": SMOLVLM_INSTRUCT,
    "gemma3-4b": GEMMA3_4B_IT,
    "gemma3-12b": GEMMA3_12B_IT,
    "gemma3-27b": GEMMA3_27B_IT,
    "smolvlm2-500m-video": SMOLVLM2_500M_VIDEO,
}

DEFAULT_MODEL_NAME = "smolvlm2-500m-video"
