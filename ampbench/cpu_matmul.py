import numpy as np
from numba import jit

from .errors import ShapeMismatch
from .views import Access, MatrixView

# --- Serial kernels over flat buffers ---

@jit(nopython=True, cache=True)
def cpu_matmul(C, A, B, M, N, W):
    """Numba-jitted naive matrix multiplication on row-major flat buffers.

    Products are summed in int64 and truncated on store, which matches
    int32 wraparound bit for bit.
    """
    for row in range(M):
        for col in range(N):
            tmp = 0
            for i in range(W):
                tmp += np.int64(A[row * W + i]) * np.int64(B[i * N + col])
            C[row * N + col] = tmp
    return C

@jit(nopython=True, cache=True)
def cpu_add(C, A, B):
    """Numba-jitted element-wise addition."""
    for i in range(C.shape[0]):
        C[i] = np.int64(A[i]) + np.int64(B[i])
    return C


def check_matmul_shapes(a, b, c):
    if a.cols != b.rows or c.rows != a.rows or c.cols != b.cols:
        raise ShapeMismatch(
            f"cannot multiply {a.rows}x{a.cols} by {b.rows}x{b.cols} into {c.rows}x{c.cols}"
        )
    if not c.writable:
        raise ValueError("output view must be a write view")


def check_add_shapes(a, b, c):
    if not (a.shape == b.shape == c.shape):
        raise ShapeMismatch(f"cannot add {a.shape} and {b.shape} into {c.shape}")
    if not c.writable:
        raise ValueError("output view must be a write view")


class CpuEngine:
    """Reference single-threaded engine. Results are ready when a call returns."""

    name = "CPU"

    def multiply(self, a: MatrixView, b: MatrixView, c: MatrixView) -> MatrixView:
        check_matmul_shapes(a, b, c)
        cpu_matmul(c.buffer, a.buffer, b.buffer, a.rows, b.cols, a.cols)
        return c

    def add(self, a: MatrixView, b: MatrixView, c: MatrixView) -> MatrixView:
        check_add_shapes(a, b, c)
        cpu_add(c.buffer, a.buffer, b.buffer)
        return c

    def matmul(self, c, a, b, M, N, W):
        """Multiply flat buffers, wrapping them in views for this call only."""
        with MatrixView(M, W, a) as va, MatrixView(W, N, b) as vb, \
                MatrixView(M, N, c, Access.WRITE) as vc:
            self.multiply(va, vb, vc)
        return c

    def elementwise_add(self, c, a, b, M, N):
        with MatrixView(M, N, a) as va, MatrixView(M, N, b) as vb, \
                MatrixView(M, N, c, Access.WRITE) as vc:
            self.add(va, vb, vc)
        return c
