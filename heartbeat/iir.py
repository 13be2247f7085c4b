"""
Direct-form I IIR filter with ring-buffer delay lines.

    y[i] = b[0]*x[i] + b[1]*x[i-1] + ... + b[n1]*x[i-n1]
                     - a[1]*y[i-1] - ... - a[n2]*y[i-n2]

with n1 = len(b) - 1 and n2 = len(a) - 1. a[0] must be exactly 1.0.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from heartbeat.filters import apply_filter


class InvalidCoefficientsError(ValueError):
    """Raised when filter coefficients are empty or a[0] != 1.0."""


@dataclass(frozen=True)
class FilterCoefficients:
    """Immutable feedback (a) and feed-forward (b) coefficients."""
    a: Tuple[float, ...]
    b: Tuple[float, ...]

    def __init__(self, a: Sequence[float], b: Sequence[float]):
        a = tuple(float(c) for c in a)
        b = tuple(float(c) for c in b)
        if len(a) < 1 or len(b) < 1 or a[0] != 1.0:
            raise InvalidCoefficientsError(
                f"Invalid coefficients: a={list(a)}, b={list(b)} "
                "(a and b must be non-empty and a[0] must be 1.0)"
            )
        object.__setattr__(self, 'a', a)
        object.__setattr__(self, 'b', b)


class IirFilter:
    """Stateful IIR filter evaluated one sample at a time.

    Each instance owns its delay lines; use one instance per signal (and
    per thread), or reset() it between independent signals.

    Args:
        coeffs: FilterCoefficients, or a sequence of a coefficients when
            b is also given
        b: Feed-forward coefficients (only when coeffs is the a sequence)

    Raises:
        InvalidCoefficientsError: If a or b is empty or a[0] != 1.0
    """

    def __init__(self, coeffs, b=None):
        if not isinstance(coeffs, FilterCoefficients):
            coeffs = FilterCoefficients(coeffs, b if b is not None else ())
        self.coeffs = coeffs
        self._a = coeffs.a
        self._b = coeffs.b
        self.n1 = len(self._b) - 1
        self.n2 = len(self._a) - 1
        self.reset()

    def reset(self) -> None:
        """Zero both delay lines and rewind the write cursors."""
        self.buf1 = [0.0] * self.n1
        self.buf2 = [0.0] * self.n2
        self.pos1 = 0
        self.pos2 = 0

    def step(self, x: float) -> float:
        """Filter one sample.

        The output is computed from the current delay lines first; only
        then are x and y pushed, so feedback never sees the sample being
        computed.
        """
        a, b = self._a, self._b
        n1, n2 = self.n1, self.n2

        acc = b[0] * x
        for j in range(1, n1 + 1):
            acc += b[j] * self.buf1[(self.pos1 + n1 - j) % n1]
        for j in range(1, n2 + 1):
            acc -= a[j] * self.buf2[(self.pos2 + n2 - j) % n2]

        if n1 > 0:
            self.buf1[self.pos1] = x
            self.pos1 = (self.pos1 + 1) % n1
        if n2 > 0:
            self.buf2[self.pos2] = acc
            self.pos2 = (self.pos2 + 1) % n2
        return acc

    __call__ = step

    def apply(self, samples: np.ndarray) -> np.ndarray:
        """Filter a whole buffer in place, continuing from the current state."""
        return apply_filter(self.step, samples)
