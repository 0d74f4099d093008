"""CPU vs accelerator int32 matrix multiplication benchmarks."""

from .errors import DeviceExecutionError, MatmulError, NoMatchingDevice, ShapeMismatch
from .devices import (
    AcceleratorRegistry,
    DeviceDescriptor,
    is_gpu,
    supports_double_precision,
    supports_host_shared_memory,
)
from .views import Access, MatrixView
from .cpu_matmul import CpuEngine, cpu_add, cpu_matmul
from .accel_matmul import AcceleratorEngine, PendingDispatch

__all__ = [
    "Access",
    "AcceleratorEngine",
    "AcceleratorRegistry",
    "CpuEngine",
    "DeviceDescriptor",
    "DeviceExecutionError",
    "MatmulError",
    "MatrixView",
    "NoMatchingDevice",
    "PendingDispatch",
    "ShapeMismatch",
    "cpu_add",
    "cpu_matmul",
    "is_gpu",
    "supports_double_precision",
    "supports_host_shared_memory",
]
