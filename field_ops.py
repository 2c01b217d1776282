"""
Numeric kernels over 2D scalar fields: convolution with zero padding,
max/average pooling and min-max normalization for display.

A scalar field is a 2D float64 array indexed [row, col]. None of the
functions below mutate their input; each returns a freshly allocated array.
"""

import numpy as np
from numpy.lib.stride_tricks import as_strided


POOL_MODES = ('max', 'average')
_POOL_ALIASES = {'avg': 'average', 'mean': 'average'}


class FieldError(ValueError):
    """Base class for malformed inputs to the field operations."""


class EmptyField(FieldError):
    pass


class InvalidFieldShape(FieldError):
    pass


class InvalidKernelShape(FieldError):
    pass


class InvalidPoolSize(FieldError):
    pass


def as_field(data):
    """Convert nested lists or an array to a validated 2D float64 field."""
    try:
        field = np.asarray(data, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidFieldShape(f"field is not a rectangular numeric grid: {e}") from e
    if field.size == 0:
        raise EmptyField(f"field has no elements (shape {field.shape})")
    if field.ndim != 2:
        raise InvalidFieldShape(f"field must be 2D, got shape {field.shape}")
    return field


def _as_kernel(kernel):
    try:
        kernel = np.asarray(kernel, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidKernelShape(f"kernel is not a rectangular numeric grid: {e}") from e
    if kernel.ndim != 2 or kernel.size == 0:
        raise InvalidKernelShape(f"kernel must be a non-empty 2D matrix, got shape {kernel.shape}")
    rows, cols = kernel.shape
    if rows != cols or rows % 2 == 0:
        raise InvalidKernelShape(f"kernel must be square with an odd side, got {rows}x{cols}")
    return kernel


def _windows(x, size, stride):
    # (out_h, out_w, size, size) read-only view of the size x size windows of x
    H, W = x.shape
    out_h = (H - size) // stride + 1
    out_w = (W - size) // stride + 1
    shape = (out_h, out_w, size, size)
    strides = (
        x.strides[0] * stride,
        x.strides[1] * stride,
        x.strides[0],
        x.strides[1],
    )
    return as_strided(x, shape=shape, strides=strides, writeable=False)


def convolve(field, kernel):
    """
    Slide `kernel` over `field` and return a field of the same shape.

    Every output cell is the sum of kernel weights times the field values
    under them, the kernel centered on that cell. Cells outside the field
    read as zero. The kernel is not flipped and its weights are used as
    given; rescale them beforehand if needed.
    """
    field = as_field(field)
    kernel = _as_kernel(kernel)
    size = kernel.shape[0]
    pad = size // 2
    padded = np.ascontiguousarray(np.pad(field, pad, mode='constant'))
    windows = _windows(padded, size, 1)
    return np.einsum('yxij,ij->yx', windows, kernel)


def pool(field, pool_size, mode='max'):
    """
    Reduce non-overlapping pool_size x pool_size windows to one value each.

    The output has shape (height // pool_size, width // pool_size); rows and
    columns past the last full window are dropped.
    """
    field = as_field(field)
    mode = _POOL_ALIASES.get(mode, mode)
    if mode not in POOL_MODES:
        raise ValueError(f"unknown pool mode '{mode}', expected one of {POOL_MODES}")
    if isinstance(pool_size, bool) or int(pool_size) != pool_size:
        raise InvalidPoolSize(f"pool size must be an integer, got {pool_size!r}")
    pool_size = int(pool_size)
    H, W = field.shape
    if pool_size <= 0:
        raise InvalidPoolSize(f"pool size must be positive, got {pool_size}")
    if pool_size > H or pool_size > W:
        raise InvalidPoolSize(f"pool size {pool_size} leaves no full window in a {H}x{W} field")

    windows = _windows(np.ascontiguousarray(field), pool_size, pool_size)
    if mode == 'max':
        return windows.max(axis=(2, 3))
    return windows.mean(axis=(2, 3))


def field_range(field):
    field = as_field(field)
    return float(field.min()), float(field.max())


def normalize(field):
    """Min-max rescale into [0, 1]. A constant field maps to all zeros."""
    field = as_field(field)
    lo, hi = field.min(), field.max()
    span = hi - lo
    if span == 0:
        span = 1.0
    return (field - lo) / span
