"""
Window functions used to shape EKG-style envelope segments.
"""

import numpy as np


def hann(length: int) -> np.ndarray:
    """Symmetric raised-cosine (Hann) window.

    w[n] = 0.5 * (1 - cos(2*pi*n / (length - 1)))

    The second half is mirrored from the first, so the window is exactly
    symmetric and starts and ends at 0.0.

    Args:
        length: Number of samples (0 gives an empty window, 1 gives [1.0])

    Returns:
        float64 array of `length` samples
    """
    if length < 0:
        raise ValueError(f"Window length must be non-negative, got {length}")
    if length == 0:
        return np.zeros(0, dtype=np.float64)
    if length == 1:
        return np.ones(1, dtype=np.float64)

    half = (length + 1) // 2
    n = np.arange(half, dtype=np.float64)
    rising = 0.5 * (1.0 - np.cos(2.0 * np.pi * n / (length - 1)))
    return np.concatenate((rising, rising[:length // 2][::-1]))
