"""Apply safetensors weights, including affine-quantized layers, to a model."""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import torch
from safetensors.torch import load_file

from ..errors import WeightApplicationError
from ..models.configuration import QuantizationDescriptor

logger = logging.getLogger(__name__)


def dequantize(
    packed: torch.Tensor,
    scales: torch.Tensor,
    biases: torch.Tensor,
    bits: int,
    group_size: int,
) -> torch.Tensor:
    """
    Expand affine-quantized weights back to floating point.

    ``packed`` stores ``32 // bits`` values per uint32 word along the last
    axis, lowest bits first. Each run of ``group_size`` values shares one scale
    and one bias: ``w = q * scale + bias``.
    """
    if bits <= 0 or 32 % bits != 0:
        raise WeightApplicationError(f"Unsupported quantization bit width: {bits}")

    per_word = 32 // bits
    mask = (1 << bits) - 1
    words = packed.to(torch.int64)
    shifts = torch.arange(0, 32, bits, dtype=torch.int64, device=words.device)
    values = (words.unsqueeze(-1) >> shifts) & mask
    values = values.reshape(*packed.shape[:-1], packed.shape[-1] * per_word)

    if values.shape[-1] % group_size != 0:
        raise WeightApplicationError(
            f"Row length {values.shape[-1]} is not a multiple of group size {group_size}"
        )

    grouped = values.reshape(*values.shape[:-1], -1, group_size).to(torch.float32)
    result = grouped * scales.to(torch.float32).unsqueeze(-1) + biases.to(torch.float32).unsqueeze(-1)
    return result.reshape(values.shape).to(scales.dtype)


def _dequantize_layers(
    weights: Dict[str, torch.Tensor],
    quantization: Optional[QuantizationDescriptor],
) -> Dict[str, torch.Tensor]:
    scale_keys = [key for key in weights if key.endswith(".scales")]
    if not scale_keys:
        return weights
    if quantization is None:
        raise WeightApplicationError(
            "Quantized weights found but config.json has no quantization descriptor"
        )

    for scale_key in scale_keys:
        layer = scale_key[: -len(".scales")]
        layer_quantization = quantization.quantization_for(layer)
        if layer_quantization is None:
            raise WeightApplicationError(
                f"Layer {layer} carries quantized weights but is configured as unquantized"
            )
        packed = weights.pop(f"{layer}.weight", None)
        if packed is None:
            raise WeightApplicationError(f"Missing packed weight for quantized layer {layer}")
        scales = weights.pop(scale_key)
        biases = weights.pop(f"{layer}.biases", None)
        if biases is None:
            biases = torch.zeros_like(scales)
        weights[f"{layer}.weight"] = dequantize(
            packed, scales, biases, layer_quantization.bits, layer_quantization.group_size
        )

    logger.info("Dequantized %d layers", len(scale_keys))
    return weights


def rename_keys(weights: Dict[str, torch.Tensor], mapping: Mapping[str, str]) -> Dict[str, torch.Tensor]:
    """Rewrite checkpoint keys with the first matching ``pattern -> replacement``."""
    if not mapping:
        return weights
    renamed = {}
    for key, value in weights.items():
        new_key = key
        for pattern, replacement in mapping.items():
            new_key, count = re.subn(pattern, replacement, key)
            if count:
                break
        renamed[new_key] = value
    return renamed


def _tied_patterns(model) -> List[str]:
    tied = getattr(model, "_tied_weights_keys", None) or []
    if isinstance(tied, Mapping):
        return list(tied.keys())
    return list(tied)


def _is_tied(key: str, patterns: Iterable[str]) -> bool:
    return any(re.search(pattern, key) for pattern in patterns)


def load_weights(
    directory: Union[str, Path],
    model,
    quantization: Optional[QuantizationDescriptor] = None,
):
    """
    Load every ``*.safetensors`` file in ``directory`` into ``model``.

    Args:
        directory: Artifact directory
        model: Unweighted torch module
        quantization: Per-layer quantization from ``config.json``, if any

    Returns:
        The model with weights applied, in eval mode

    Raises:
        WeightApplicationError: If files are missing or any key or shape does not match
    """
    directory = Path(directory)
    files = sorted(directory.glob("*.safetensors"))
    if not files:
        raise WeightApplicationError(f"No safetensors weights found in {directory}")

    weights: Dict[str, torch.Tensor] = {}
    for path in files:
        logger.debug("Reading weights from %s", path.name)
        weights.update(load_file(str(path)))

    weights = _dequantize_layers(weights, quantization)
    weights = rename_keys(weights, getattr(model, "_checkpoint_conversion_mapping", None) or {})

    try:
        result = model.load_state_dict(weights, strict=False)
    except RuntimeError as exc:
        raise WeightApplicationError(f"Weight shape mismatch: {exc}") from exc

    tied = _tied_patterns(model)
    missing = [key for key in result.missing_keys if not _is_tied(key, tied)]
    unexpected = list(result.unexpected_keys)
    if missing or unexpected:
        raise WeightApplicationError(
            f"Weights do not match model parameters "
            f"(missing: {missing[:5]}, unexpected: {unexpected[:5]})"
        )

    if hasattr(model, "tie_weights"):
        model.tie_weights()
    model.eval()
    logger.info("Applied %d tensors from %d files", len(weights), len(files))
    return model
