"""Query helpers for model preset access."""

from typing import Dict, Optional

from .model_registry import AVAILABLE_MODELS
from .model_types import ModelConfiguration


def get_model_config(model_name: str) -> ModelConfiguration:
    """Get the preset registered under a catalog name."""
    if model_name not in AVAILABLE_MODELS:
        raise ValueError(
            f"Model {model_name} not supported. "
            f"Available models: {list(AVAILABLE_MODELS.keys())}"
        )
    return AVAILABLE_MODELS[model_name]


def get_available_models() -> Dict[str, ModelConfiguration]:
    """Get all available model presets."""
    return AVAILABLE_MODELS.copy()


def find_model_config(model_id: str) -> Optional[ModelConfiguration]:
    """Find a preset by catalog name or repository id."""
    if model_id in AVAILABLE_MODELS:
        return AVAILABLE_MODELS[model_id]
    for config in AVAILABLE_MODELS.values():
        if config.id == model_id:
            return config
    return None


def resolve_model_config(model_id: str) -> ModelConfiguration:
    """
    Resolve a catalog name, repository id, or local directory to a preset.

    Ids that are not in the catalog are used as-is with the default prompt.
    """
    config = find_model_config(model_id)
    if config is not None:
        return config
    return ModelConfiguration(id=model_id)
