"""Exceptions raised by the matmul engines and the device registry."""


class MatmulError(Exception):
    """Base class for ampbench errors."""


class ShapeMismatch(MatmulError, ValueError):
    """A view's rows x cols disagrees with its buffer, or operands don't conform."""


class NoMatchingDevice(MatmulError, LookupError):
    """No enumerated device satisfied the selection predicate."""


class DeviceExecutionError(MatmulError, RuntimeError):
    """A dispatch or synchronize failed on the device. Output contents are undefined."""

    def __init__(self, device, message):
        self.device = device
        super().__init__(f"{getattr(device, 'name', device)}: {message}")
