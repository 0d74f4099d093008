"""Console reporting for the benchmark runner."""

import sys
import time
from contextlib import contextmanager

SEPARATOR = "---------------------------"
CSV_HEADER = "engine,op,device,M,N,W,rep,time_sec"


def _flag(label, value):
    return f"{label}: {'true' if value else 'false'}"


def print_device(device, file=None):
    file = file or sys.stdout
    print(device.name, file=file)
    print(device.path, file=file)
    print(f"Dedicated memory: {device.dedicated_memory_mb} MB", file=file)
    print(_flag("CPU shared memory", device.supports_host_shared_memory), file=file)
    print(_flag("double precision", device.supports_double_precision), file=file)
    print(_flag("limited double precision", device.supports_limited_double_precision), file=file)


def print_devices(devices, file=None):
    """Print every enumerated device with its capability flags."""
    file = file or sys.stdout
    print(f"\n{SEPARATOR}", file=file)
    print("All accelerators: ", file=file)
    for device in devices:
        print(file=file)
        print_device(device, file=file)
    print(f"\n{SEPARATOR}", file=file)


def print_active_device(device, file=None):
    file = file or sys.stdout
    print(f"\n{SEPARATOR}", file=file)
    print(f"Chosen accelerator: {device.name}", file=file)
    print(f"Chosen device path: {device.path}", file=file)
    print(f"{SEPARATOR}\n", file=file)


def elapsed_ms(seconds):
    return int(seconds * 1000)


def print_elapsed(name, seconds, file=None):
    print(f"{name} took {elapsed_ms(seconds)} milliseconds", file=file or sys.stdout)


def print_failure(name, error, file=None):
    print(f"{name} failed: {error}", file=file or sys.stderr)


def print_csv_row(engine, op, device, M, N, W, rep, seconds, file=None):
    # Header is printed once by the runner
    print(f"{engine},{op},{device},{M},{N},{W},{rep},{seconds:.9f}", file=file or sys.stdout)


class Timing:
    """Wall-clock duration of one named operation."""

    def __init__(self, name):
        self.name = name
        self.seconds = None

    @property
    def milliseconds(self):
        return elapsed_ms(self.seconds)


@contextmanager
def timed(name):
    """Time the body with ``time.perf_counter``.

    ``seconds`` stays None if the body raises, so a failed run has no timing.
    """
    timing = Timing(name)
    start = time.perf_counter()
    yield timing
    timing.seconds = time.perf_counter() - start
