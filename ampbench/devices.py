"""Accelerator enumeration and selection.

The registry is an explicit context object: it holds the active device and
engines read it from there instead of from process-wide state. A snapshot of
the available devices is taken on every ``list_devices()`` call.
"""

import os
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from numba import cuda

from .errors import NoMatchingDevice

HOST_DEVICE_PATH = "cpu"
CUDA_PATH_PREFIX = "cuda:"

# FP64 arrived with compute capability 1.3
_MIN_DOUBLE_CC = (1, 3)


@dataclass(frozen=True)
class DeviceDescriptor:
    """Point-in-time description of one compute device."""
    name: str
    path: str
    dedicated_memory_mb: int
    supports_host_shared_memory: bool
    supports_double_precision: bool
    supports_limited_double_precision: bool
    kind: str = "cpu"
    index: int = 0

    def __str__(self):
        return f"{self.name} ({self.path})"


def supports_host_shared_memory(device: DeviceDescriptor) -> bool:
    return device.supports_host_shared_memory


def supports_double_precision(device: DeviceDescriptor) -> bool:
    return device.supports_double_precision


def is_gpu(device: DeviceDescriptor) -> bool:
    return device.kind == "cuda"


def host_devices() -> List[DeviceDescriptor]:
    """The host CPU, driven by numba's parallel threading layer."""
    threads = os.cpu_count() or 1
    return [
        DeviceDescriptor(
            name=f"CPU accelerator ({threads} threads)",
            path=HOST_DEVICE_PATH,
            dedicated_memory_mb=0,
            supports_host_shared_memory=True,
            supports_double_precision=True,
            supports_limited_double_precision=True,
            kind="cpu",
            index=0,
        )
    ]


def _decode(name):
    if isinstance(name, bytes):
        return name.decode("utf-8", errors="replace")
    return str(name)


def cuda_devices() -> List[DeviceDescriptor]:
    """Every CUDA GPU numba can see. Empty when no driver is present."""
    if not cuda.is_available():
        return []

    devices = []
    for gpu in cuda.gpus:
        with gpu:
            _, total = cuda.current_context().get_memory_info()
        double = tuple(gpu.compute_capability) >= _MIN_DOUBLE_CC
        devices.append(
            DeviceDescriptor(
                name=_decode(gpu.name),
                path=f"{CUDA_PATH_PREFIX}{gpu.id}",
                dedicated_memory_mb=int(total) // (1024 * 1024),
                supports_host_shared_memory=bool(gpu.CAN_MAP_HOST_MEMORY),
                supports_double_precision=double,
                supports_limited_double_precision=double,
                kind="cuda",
                index=gpu.id,
            )
        )
    return devices


DEFAULT_ENUMERATORS = (cuda_devices, host_devices)


class AcceleratorRegistry:
    """Enumerates devices and tracks the one subsequent dispatches use.

    The system default, used until ``select_device`` succeeds, is the first
    enumerated device: the first CUDA GPU when one exists, else the host.
    """

    def __init__(self, enumerators: Optional[Iterable[Callable[[], List[DeviceDescriptor]]]] = None):
        self._enumerators = tuple(enumerators) if enumerators is not None else DEFAULT_ENUMERATORS
        self._active: Optional[DeviceDescriptor] = None

    def list_devices(self) -> List[DeviceDescriptor]:
        devices = []
        for enumerate_devices in self._enumerators:
            devices.extend(enumerate_devices())
        return devices

    def find_device(self, predicate: Callable[[DeviceDescriptor], bool]) -> DeviceDescriptor:
        for device in self.list_devices():
            if predicate(device):
                return device
        raise NoMatchingDevice(f"no device matches {getattr(predicate, '__name__', predicate)}")

    def select_device(self, predicate: Callable[[DeviceDescriptor], bool] = supports_host_shared_memory) -> bool:
        """Make the first device matching ``predicate`` active.

        Returns False and leaves the active device alone when nothing matches.
        """
        try:
            device = self.find_device(predicate)
        except NoMatchingDevice:
            return False
        self._active = device
        return True

    def set_default(self, path: str) -> bool:
        return self.select_device(lambda device: device.path == path)

    def active_device(self) -> DeviceDescriptor:
        if self._active is None:
            devices = self.list_devices()
            if not devices:
                raise NoMatchingDevice("no compute devices available")
            self._active = devices[0]
        return self._active
