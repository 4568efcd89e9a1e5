from collections import OrderedDict
from typing import Final

import numpy as np


def as_kernel(values) -> np.ndarray:
    """2-D float32 coefficient table, row-major, no normalisation."""
    kernel = np.array(values, dtype=np.float32)
    if kernel.ndim != 2 or kernel.size == 0:
        raise ValueError(f"A kernel must be a non-empty 2-D table, got shape {kernel.shape}.")
    return kernel


def _preset(values) -> np.ndarray:
    kernel = as_kernel(values)
    kernel.flags.writeable = False
    return kernel


IDENTITY: Final = _preset([[1]])

LAPLACIAN_NEGATIVE: Final = _preset([
    [0, -1, 0],
    [-1, 4, -1],
    [0, -1, 0],
])

LAPLACIAN_POSITIVE: Final = _preset([
    [0, 1, 0],
    [1, -4, 1],
    [0, 1, 0],
])

LAPLACIAN_DIAGONAL_NEGATIVE: Final = _preset([
    [-1, -1, -1],
    [-1, 8, -1],
    [-1, -1, -1],
])

LAPLACIAN_DIAGONAL_POSITIVE: Final = _preset([
    [1, 1, 1],
    [1, -8, 1],
    [1, 1, 1],
])

PREWITT_HORIZONTAL: Final = _preset([
    [-1, -1, -1],
    [0, 0, 0],
    [1, 1, 1],
])

PREWITT_VERTICAL: Final = _preset([
    [-1, 0, 1],
    [-1, 0, 1],
    [-1, 0, 1],
])

SOBEL_HORIZONTAL: Final = _preset([
    [-1, -2, -1],
    [0, 0, 0],
    [1, 2, 1],
])

SOBEL_VERTICAL: Final = _preset([
    [-1, 0, 1],
    [-2, 0, 2],
    [-1, 0, 1],
])

# 2x2: anchored at (1, 1) like every other kernel, see ImageFilters.convolve
ROBERTS_GX: Final = _preset([
    [1, 0],
    [0, -1],
])

ROBERTS_GY: Final = _preset([
    [0, 1],
    [-1, 0],
])

HIGH_PASS: Final = _preset([
    [-1, -1, -1],
    [-1, 8, -1],
    [-1, -1, -1],
])

ROBINSON: Final = OrderedDict([
    ("north", _preset([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]])),
    ("north_west", _preset([[0, 1, 2], [-1, 0, 1], [-2, -1, 0]])),
    ("west", _preset([[1, 2, 1], [0, 0, 0], [-1, -2, -1]])),
    ("south_west", _preset([[2, 1, 0], [1, 0, -1], [0, -1, -2]])),
    ("south", _preset([[1, 0, -1], [2, 0, -2], [1, 0, -1]])),
    ("south_east", _preset([[0, -1, -2], [1, 0, -1], [2, 1, 0]])),
    ("east", _preset([[-1, -2, -1], [0, 0, 0], [1, 2, 1]])),
    ("north_east", _preset([[-2, -1, 0], [-1, 0, 1], [0, 1, 2]])),
])


def box_kernel(size: int) -> np.ndarray:
    """Uniform ``size x size`` averaging kernel, each weight ``1 / size**2``."""
    if size < 1:
        raise ValueError("Kernel size must be positive.")
    return np.full((size, size), 1.0 / (size * size), dtype=np.float32)


def high_pass_kernel(rows: int, cols: int) -> np.ndarray:
    """-1 everywhere except the anchor cell, which gets ``rows * cols - 1``."""
    if rows < 1 or cols < 1:
        raise ValueError("Kernel dimensions must be positive.")
    kernel = np.full((rows, cols), -1.0, dtype=np.float32)
    kernel[rows // 2, cols // 2] = rows * cols - 1
    return kernel


def gaussian_kernel(size: int, sigma: float = 1.0) -> np.ndarray:

    if size % 2 == 0:
        raise ValueError("Kernel size must be an odd number.")

    center = size // 2

    x = np.arange(-center, center + 1)
    y = np.arange(-center, center + 1)

    X, Y = np.meshgrid(x, y)

    kernel = np.exp(-(X**2 + Y**2) / (2 * sigma**2))

    return (kernel / np.sum(kernel)).astype(np.float32)


_PRESETS = {
    "identity": IDENTITY,
    "laplacian_negative": LAPLACIAN_NEGATIVE,
    "laplacian_positive": LAPLACIAN_POSITIVE,
    "laplacian_diagonal_negative": LAPLACIAN_DIAGONAL_NEGATIVE,
    "laplacian_diagonal_positive": LAPLACIAN_DIAGONAL_POSITIVE,
    "prewitt_horizontal": PREWITT_HORIZONTAL,
    "prewitt_vertical": PREWITT_VERTICAL,
    "sobel_horizontal": SOBEL_HORIZONTAL,
    "sobel_vertical": SOBEL_VERTICAL,
    "roberts_gx": ROBERTS_GX,
    "roberts_gy": ROBERTS_GY,
    "high_pass": HIGH_PASS,
}
_PRESETS.update((f"robinson_{direction}", kernel) for direction, kernel in ROBINSON.items())

PRESET_NAMES: Final = tuple(sorted(_PRESETS))


def preset(name: str) -> np.ndarray:
    """Writable copy of a named preset."""
    try:
        return _PRESETS[name].copy()
    except KeyError:
        raise KeyError(f"Unknown kernel preset: {name!r}") from None
