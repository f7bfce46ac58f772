"""Device selection and memory monitoring around model loads."""

import gc
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil
import torch

logger = logging.getLogger(__name__)

GB = 1024 ** 3


@dataclass
class MemoryStats:
    """Accelerator and system memory snapshot."""
    gpu_allocated_gb: float
    gpu_cached_gb: float
    gpu_total_gb: float
    system_memory_percent: float
    system_memory_available_gb: float


def select_device(preferred: Optional[str] = None) -> str:
    """
    Pick the torch device used for inference.

    Args:
        preferred: "cuda", "mps", "cpu", or None/"auto" for the best available

    Returns:
        Device name; falls back to "cpu" when the preferred backend is missing
    """
    if preferred and preferred != "auto":
        if preferred.startswith("cuda") and not torch.cuda.is_available():
            logger.warning("CUDA requested but not available, using CPU")
            return "cpu"
        if preferred == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS requested but not available, using CPU")
            return "cpu"
        return preferred

    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    return "cpu"


def parameter_count(model: Any) -> int:
    """Number of parameters held by a torch module."""
    return sum(parameter.numel() for parameter in model.parameters())


class MemoryMonitor:
    """Track GPU and host memory while models are loaded."""

    def __init__(self, gpu_memory_limit_gb: Optional[float] = None):
        """
        Args:
            gpu_memory_limit_gb: Upper bound checked after a load, None for no limit
        """
        self.gpu_memory_limit = gpu_memory_limit_gb
        self.peak_memory = 0.0

    def get_gpu_memory_usage(self) -> float:
        """GPU memory allocated in GB, 0.0 without CUDA."""
        if not torch.cuda.is_available():
            return 0.0
        return torch.cuda.memory_allocated() / GB

    def get_gpu_memory_cached(self) -> float:
        if not torch.cuda.is_available():
            return 0.0
        return torch.cuda.memory_reserved() / GB

    def get_total_gpu_memory(self) -> float:
        if not torch.cuda.is_available():
            return 0.0
        return torch.cuda.get_device_properties(0).total_memory / GB

    def get_system_memory_stats(self) -> Dict[str, float]:
        memory = psutil.virtual_memory()
        return {
            "percent_used": memory.percent,
            "available_gb": memory.available / GB,
            "total_gb": memory.total / GB,
        }

    def get_comprehensive_stats(self) -> MemoryStats:
        system_stats = self.get_system_memory_stats()
        return MemoryStats(
            gpu_allocated_gb=self.get_gpu_memory_usage(),
            gpu_cached_gb=self.get_gpu_memory_cached(),
            gpu_total_gb=self.get_total_gpu_memory(),
            system_memory_percent=system_stats["percent_used"],
            system_memory_available_gb=system_stats["available_gb"],
        )

    def cleanup_gpu_memory(self) -> None:
        """Release cached accelerator memory and collect garbage."""
        gc.collect()
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
            torch.cuda.ipc_collect()
            torch.cuda.synchronize()
        elif torch.backends.mps.is_available():
            torch.mps.empty_cache()

    def check_memory_limit(self, operation_name: str = "operation") -> bool:
        """
        Raises:
            RuntimeError: If GPU usage exceeds the configured limit
        """
        current_usage = self.get_gpu_memory_usage()
        if self.gpu_memory_limit is not None and current_usage > self.gpu_memory_limit:
            raise RuntimeError(
                f"GPU memory limit exceeded during {operation_name}: "
                f"{current_usage:.2f}GB > {self.gpu_memory_limit:.2f}GB"
            )
        self.peak_memory = max(self.peak_memory, current_usage)
        return True

    def log_memory_usage(self, operation: str, log: Optional[logging.Logger] = None) -> None:
        stats = self.get_comprehensive_stats()
        self.peak_memory = max(self.peak_memory, stats.gpu_allocated_gb)

        gpu_percentage = (
            stats.gpu_allocated_gb / stats.gpu_total_gb * 100
            if stats.gpu_total_gb > 0 else 0.0
        )
        (log or logger).info(
            "[%s] GPU: %.2fGB (%.1f%%), Cached: %.2fGB, System: %.1f%%",
            operation,
            stats.gpu_allocated_gb,
            gpu_percentage,
            stats.gpu_cached_gb,
            stats.system_memory_percent,
        )
