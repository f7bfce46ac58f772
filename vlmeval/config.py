"""
Runtime settings for the evaluator and command line front end.

Every field can be overridden with a ``VLMEVAL_<FIELD_NAME>`` environment
variable, e.g. ``VLMEVAL_MAX_TOKENS=120``.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Optional, Tuple

from .models.model_registry import DEFAULT_MODEL_NAME
from .models.model_types import GenerateParameters

ENV_PREFIX = "VLMEVAL_"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EvaluatorSettings:
    """Tunable parameters for loading and generation."""

    model_name: str = DEFAULT_MODEL_NAME
    cache_dir: Optional[str] = None
    bundle_dir: Optional[str] = None  # load from a bundled directory instead of the hub

    # -- Generation --
    max_tokens: int = 50
    temperature: float = 0.7
    top_p: float = 0.9
    update_interval: float = 0.1  # seconds between visible output updates
    resize_width: int = 448
    resize_height: int = 448

    # -- Compute --
    device: str = "auto"
    memory_limit_gb: Optional[float] = None

    # -- Camera --
    camera_index: int = 0
    capture_interval: float = 0.5
    log_file: str = "vlmeval.log"
    verbose: bool = False

    apply_environment: bool = field(default=True, repr=False)

    def __post_init__(self):
        if self.apply_environment:
            self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        converters = {
            "model_name": str,
            "cache_dir": str,
            "bundle_dir": str,
            "max_tokens": int,
            "temperature": float,
            "top_p": float,
            "update_interval": float,
            "resize_width": int,
            "resize_height": int,
            "device": str,
            "memory_limit_gb": float,
            "camera_index": int,
            "capture_interval": float,
            "log_file": str,
            "verbose": _parse_bool,
        }
        for name, convert in converters.items():
            value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                setattr(self, name, convert(value))

    @property
    def resize(self) -> Tuple[int, int]:
        return (self.resize_width, self.resize_height)

    @property
    def generate_parameters(self) -> GenerateParameters:
        return GenerateParameters(
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
        )

    def override(self, **values) -> "EvaluatorSettings":
        """Apply non-None values (e.g. parsed CLI flags) on top of these settings."""
        known = {f.name for f in fields(self)}
        for name, value in values.items():
            if name in known and value is not None:
                setattr(self, name, value)
        return self


_settings_instance: Optional[EvaluatorSettings] = None


def get_settings() -> EvaluatorSettings:
    """Return the process-wide settings, creating them on first call."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = EvaluatorSettings()
    return _settings_instance
