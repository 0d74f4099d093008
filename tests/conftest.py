import os

os.environ.setdefault("MPLBACKEND", "Agg")

import numpy as np
import pytest

from ampbench.devices import DeviceDescriptor, host_devices


def make_device(name, path, shared=False, double=False, kind="cuda", index=0):
    return DeviceDescriptor(
        name=name,
        path=path,
        dedicated_memory_mb=4096,
        supports_host_shared_memory=shared,
        supports_double_precision=double,
        supports_limited_double_precision=double,
        kind=kind,
        index=index,
    )


@pytest.fixture
def host_device():
    return host_devices()[0]


@pytest.fixture
def fake_devices():
    return [
        make_device("Discrete GPU", "cuda:0", shared=False, double=True, index=0),
        make_device("Integrated GPU", "cuda:1", shared=True, double=False, index=1),
        make_device("CPU accelerator", "cpu", shared=True, double=True, kind="cpu"),
    ]


def reference_matmul(A, B, M, N, W):
    """int32 wraparound matmul via int64 numpy."""
    a = A.astype(np.int64).reshape(M, W)
    b = B.astype(np.int64).reshape(W, N)
    return (a @ b).astype(np.int32).reshape(-1)
