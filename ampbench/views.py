"""Non-owning 2-D views over flat int32 buffers."""

import enum

import numpy as np

from .errors import ShapeMismatch

DTYPE = np.int32
_INT32 = np.iinfo(DTYPE)


def _checked_int32(buffer):
    """Flat int32 array for a read view. Never wraps or truncates values."""
    if isinstance(buffer, np.ndarray):
        if buffer.dtype != DTYPE:
            raise TypeError(f"read views need an int32 buffer, got {buffer.dtype}")
        return np.ascontiguousarray(buffer).reshape(-1)

    values = np.asarray(buffer)
    if values.size == 0:
        return np.zeros(0, dtype=DTYPE)
    if values.dtype.kind not in "iu":
        raise TypeError(f"read views need integer values, got {values.dtype}")
    if values.min() < _INT32.min or values.max() > _INT32.max:
        raise OverflowError("value out of int32 range")
    return values.astype(DTYPE).reshape(-1)


class Access(enum.Enum):
    READ = "read"
    WRITE = "write"


class MatrixView:
    """A (rows, cols) window onto a caller-owned flat int32 buffer.

    The view never copies a writable buffer: ``array`` is a reshape of the
    caller's storage, so results written through it land in the caller's
    buffer. Used as a context manager the view is a scoped borrow: on exit it
    waits for any outstanding dispatch, even when the body raised, and then
    drops its buffer reference.
    """

    def __init__(self, rows, cols, buffer, access=Access.READ):
        rows, cols = int(rows), int(cols)
        if access is Access.WRITE:
            if not isinstance(buffer, np.ndarray) or buffer.dtype != DTYPE:
                raise TypeError("write views need an int32 numpy buffer")
            if buffer.ndim != 1 or not buffer.flags.c_contiguous:
                raise TypeError("write views need a flat contiguous buffer")
        else:
            buffer = _checked_int32(buffer)

        if rows < 0 or cols < 0 or rows * cols != buffer.size:
            raise ShapeMismatch(
                f"view of {rows}x{cols} over a buffer of length {buffer.size}"
            )

        self.rows = rows
        self.cols = cols
        self.access = access
        self.discard = False
        self._buffer = buffer
        self._array = buffer.reshape(rows, cols)
        self._pending = None
        self._failure = None

    def __repr__(self):
        return f"MatrixView({self.rows}x{self.cols}, {self.access.value})"

    @property
    def shape(self):
        return (self.rows, self.cols)

    @property
    def writable(self):
        return self.access is Access.WRITE

    @property
    def released(self):
        return self._buffer is None

    @property
    def buffer(self):
        if self._buffer is None:
            raise RuntimeError(f"{self!r} has been released")
        return self._buffer

    @property
    def array(self):
        if self._array is None:
            raise RuntimeError(f"{self!r} has been released")
        return self._array

    def at(self, row, col):
        # No bounds checks on the hot path.
        return self._array[row, col]

    def discard_data(self):
        """Hint that current contents need not reach the device."""
        if not self.writable:
            raise ValueError("only write views can discard their contents")
        self.discard = True

    @property
    def pending(self):
        return self._pending is not None

    def attach(self, pending):
        if not self.writable:
            raise ValueError("only write views receive dispatch results")
        if self._pending is not None:
            raise RuntimeError(f"{self!r} already has an outstanding dispatch")
        self._failure = None
        self._pending = pending

    def synchronize(self):
        """Block until device writes are visible in the host buffer.

        A failed dispatch keeps failing on every later call until a new
        dispatch is attached; the buffer contents are not trustworthy.
        """
        if self._failure is not None:
            raise self._failure
        pending = self._pending
        if pending is None:
            return
        try:
            pending.wait()
        except Exception as e:
            self._failure = e
            raise
        finally:
            self._pending = None

    def release(self):
        self._buffer = None
        self._array = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # Always wait: the device may still be writing into the buffer.
        # A device failure raised here chains onto the body's exception.
        try:
            if self._pending is not None:
                self.synchronize()
        finally:
            self.release()
        return False
