"""Core model preset and generation parameter datatypes."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional


DEFAULT_PROMPT = "Describe the image in English"


@dataclass(frozen=True)
class ModelConfiguration:
    """A named, deployable model preset."""

    id: str  # hub repository id or local directory
    default_prompt: str = DEFAULT_PROMPT
    extra_eos_tokens: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def name(self) -> str:
        return self.id

    @property
    def is_local_directory(self) -> bool:
        return os.path.isdir(self.id)


@dataclass
class GenerateParameters:
    """Sampling parameters handed to the generation engine."""

    max_tokens: int = 50
    temperature: float = 0.7
    top_p: float = 0.9
    repetition_penalty: Optional[float] = None

    def to_generation_kwargs(self, eos_token_ids: Optional[List[int]] = None) -> Dict[str, Any]:
        """Translate into ``model.generate`` keyword arguments."""
        kwargs: Dict[str, Any] = {
            "max_new_tokens": self.max_tokens,
            "do_sample": self.temperature > 0.0,
        }
        if kwargs["do_sample"]:
            kwargs["temperature"] = self.temperature
            kwargs["top_p"] = self.top_p
        if self.repetition_penalty is not None:
            kwargs["repetition_penalty"] = self.repetition_penalty
        if eos_token_ids:
            kwargs["eos_token_id"] = list(eos_token_ids)
        return kwargs
