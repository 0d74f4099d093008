"""Data-parallel engine: one independent unit of work per output element.

A dispatch fans the units out on the active device and returns at once. The
output view's ``synchronize()`` is the only blocking point; nothing in the
output buffer may be read before it returns.
"""

import math
import threading

import numpy as np
from numba import cuda, jit, prange
from numba.cuda.cudadrv.driver import CudaAPIError
from numba.cuda.cudadrv.error import CudaDriverError, CudaSupportError

from .cpu_matmul import check_add_shapes, check_matmul_shapes
from .devices import AcceleratorRegistry, DeviceDescriptor
from .errors import DeviceExecutionError
from .views import Access, MatrixView

THREADS_PER_BLOCK = (16, 16)

_CUDA_ERRORS = (CudaAPIError, CudaDriverError, CudaSupportError)

# --- Host device kernels ---

@jit(nopython=True, cache=True, parallel=True, nogil=True)
def host_parallel_matmul(A, B, C):
    """One prange iteration per output element, each a serial k-reduction."""
    M, N = C.shape
    W = A.shape[1]
    for idx in prange(M * N): # Parallelized over output elements
        row = idx // N
        col = idx % N
        tmp = 0
        for k in range(W):
            tmp += np.int64(A[row, k]) * np.int64(B[k, col])
        C[row, col] = tmp
    return C

@jit(nopython=True, cache=True, parallel=True, nogil=True)
def host_parallel_add(A, B, C):
    M, N = C.shape
    for idx in prange(M * N):
        row = idx // N
        col = idx % N
        C[row, col] = np.int64(A[row, col]) + np.int64(B[row, col])
    return C

# --- CUDA kernels ---

@cuda.jit
def cuda_matmul_kernel(A, B, C):
    row, col = cuda.grid(2)
    if row < C.shape[0] and col < C.shape[1]:
        tmp = 0
        for k in range(A.shape[1]):
            tmp += np.int64(A[row, k]) * np.int64(B[k, col])
        C[row, col] = tmp

@cuda.jit
def cuda_add_kernel(A, B, C):
    row, col = cuda.grid(2)
    if row < C.shape[0] and col < C.shape[1]:
        C[row, col] = np.int64(A[row, col]) + np.int64(B[row, col])


HOST_KERNELS = {"matmul": host_parallel_matmul, "add": host_parallel_add}
CUDA_KERNELS = {"matmul": cuda_matmul_kernel, "add": cuda_add_kernel}


class PendingDispatch:
    """Handle for a submitted kernel; ``wait()`` makes the results host-visible."""

    def __init__(self, device: DeviceDescriptor):
        self.device = device
        self.completed = False

    def wait(self):
        if not self.completed:
            self._complete()
            self.completed = True

    def _complete(self):
        pass


class _HostPending(PendingDispatch):
    """Runs one host kernel on its own thread; ``wait()`` joins it."""

    def __init__(self, device, kernel, args, launch_lock):
        super().__init__(device)
        self._error = None
        self._thread = threading.Thread(
            target=self._run, args=(kernel, args, launch_lock), name="ampbench-host"
        )
        self._thread.start()

    def _run(self, kernel, args, launch_lock):
        with launch_lock:
            try:
                kernel(*args)
            except Exception as e:
                self._error = e

    def _complete(self):
        self._thread.join()
        if self._error is not None:
            e = self._error
            raise DeviceExecutionError(self.device, f"kernel failed: {e}") from e


class _CudaPending(PendingDispatch):

    def __init__(self, device, stream, d_out, host_out):
        super().__init__(device)
        self._stream = stream
        self._d_out = d_out
        self._host_out = host_out

    def _complete(self):
        try:
            with cuda.gpus[self.device.index]:
                self._d_out.copy_to_host(self._host_out, stream=self._stream)
                self._stream.synchronize()
        except _CUDA_ERRORS as e:
            raise DeviceExecutionError(self.device, f"synchronize failed: {e}") from e
        finally:
            self._d_out = None


class HostQueue:
    """Launches host kernels without blocking the caller.

    Each dispatch gets a short-lived thread that ends with its kernel, so no
    thread that ran a parallel region outlives its dispatch. The kernels
    release the GIL. Launches are serialized because numba's workqueue layer
    can't run two parallel regions at once. Inputs that overlap the output
    are copied first, as a device upload would.
    """

    _launch_lock = threading.Lock()

    def __init__(self, device: DeviceDescriptor):
        self.device = device

    def submit(self, kernel_name, inputs, output):
        kernel = HOST_KERNELS[kernel_name]
        out = output.array
        args = [v.array.copy() if np.shares_memory(v.array, out) else v.array for v in inputs]
        return _HostPending(self.device, kernel, (*args, out), self._launch_lock)


class CudaQueue:
    """Copies operands to the GPU and launches on a per-dispatch stream."""

    def __init__(self, device: DeviceDescriptor):
        self.device = device

    def submit(self, kernel_name, inputs, output):
        kernel = CUDA_KERNELS[kernel_name]
        rows, cols = output.shape
        blocks = (math.ceil(rows / THREADS_PER_BLOCK[0]), math.ceil(cols / THREADS_PER_BLOCK[1]))
        try:
            with cuda.gpus[self.device.index]:
                stream = cuda.stream()
                d_inputs = [cuda.to_device(v.array, stream=stream) for v in inputs]
                if output.discard:
                    d_out = cuda.device_array(output.shape, dtype=output.array.dtype, stream=stream)
                else:
                    d_out = cuda.to_device(output.array, stream=stream)
                kernel[blocks, THREADS_PER_BLOCK, stream](*d_inputs, d_out)
        except _CUDA_ERRORS as e:
            raise DeviceExecutionError(self.device, f"dispatch failed: {e}") from e
        return _CudaPending(self.device, stream, d_out, output.array)


QUEUES = {"cpu": HostQueue, "cuda": CudaQueue}


class AcceleratorEngine:
    """Dispatches per-element kernels to a device.

    The device comes from, in order: the ``device`` argument of a call, the
    descriptor given at construction, or the registry's active device.
    """

    name = "AMP"

    def __init__(self, device: DeviceDescriptor = None, registry: AcceleratorRegistry = None):
        self._device = device
        self._registry = registry if registry is not None else AcceleratorRegistry()

    @property
    def device(self) -> DeviceDescriptor:
        if self._device is not None:
            return self._device
        return self._registry.active_device()

    def _queue(self, device):
        try:
            queue_cls = QUEUES[device.kind]
        except KeyError:
            raise DeviceExecutionError(device, f"no queue for device kind '{device.kind}'") from None
        return queue_cls(device)

    def _dispatch(self, kernel_name, inputs, output, device):
        device = device if device is not None else self.device
        output.discard_data()
        if output.rows == 0 or output.cols == 0:
            # Nothing to compute, attach an already-complete handle.
            pending = PendingDispatch(device)
        else:
            pending = self._queue(device).submit(kernel_name, inputs, output)
        output.attach(pending)
        return pending

    def dispatch_multiply(self, a: MatrixView, b: MatrixView, c: MatrixView, device=None) -> PendingDispatch:
        """Submit C = A @ B without waiting. Call ``c.synchronize()`` before reading C."""
        check_matmul_shapes(a, b, c)
        return self._dispatch("matmul", (a, b), c, device)

    def dispatch_add(self, a: MatrixView, b: MatrixView, c: MatrixView, device=None) -> PendingDispatch:
        check_add_shapes(a, b, c)
        return self._dispatch("add", (a, b), c, device)

    def multiply(self, a, b, c, device=None):
        self.dispatch_multiply(a, b, c, device)
        c.synchronize()
        return c

    def add(self, a, b, c, device=None):
        self.dispatch_add(a, b, c, device)
        c.synchronize()
        return c

    def matmul(self, c, a, b, M, N, W, device=None):
        """Multiply flat buffers, wrapping them in views for this call only."""
        with MatrixView(M, W, a) as va, MatrixView(W, N, b) as vb, \
                MatrixView(M, N, c, Access.WRITE) as vc:
            self.dispatch_multiply(va, vb, vc, device)
        return c

    def elementwise_add(self, c, a, b, M, N, device=None):
        with MatrixView(M, N, a) as va, MatrixView(M, N, b) as vb, \
                MatrixView(M, N, c, Access.WRITE) as vc:
            self.dispatch_add(va, vb, vc, device)
        return c
