"""
Filter composition - in-place, sample-by-sample signal transforms.

Every per-sample transform (the IIR resonance filter, the Butterworth
bandpass cascade, or a plain function) is a callable mapping one float
sample to one float sample, carrying its own state between calls.
apply_filter() is the single place where such a transform is run over a
buffer.

Usage:

    from heartbeat.filters import ButterworthBandpass, apply_filter, normalize

    bandpass = ButterworthBandpass(order=3, sample_rate=44100,
                                   center_hz=80.0, width_hz=120.0)
    apply_filter(bandpass, samples)
    normalize(samples)
"""

from typing import Callable, List, Tuple

import numpy as np
from scipy import signal

# One float in, one float out; state (if any) lives inside the callable
SampleTransform = Callable[[float], float]

# Heartbeat bandpass edges: BANDPASS_LOW_HZ to BANDPASS_HIGH_OFFSET_HZ + tempo
BANDPASS_LOW_HZ = 20.0
BANDPASS_HIGH_OFFSET_HZ = 140.0


def apply_filter(transform: SampleTransform, samples: np.ndarray) -> np.ndarray:
    """Replace every sample with transform(sample), in index order.

    Args:
        transform: Per-sample callable (IirFilter, ButterworthBandpass, ...)
        samples: Buffer to filter in place

    Returns:
        The same buffer
    """
    samples[:] = [transform(x) for x in samples.tolist()]
    return samples


def gain(factor: float, samples: np.ndarray) -> np.ndarray:
    """In-place linear gain. Returns the same buffer."""
    samples *= factor
    return samples


def normalize(samples: np.ndarray) -> np.ndarray:
    """In-place peak normalization to max(|s|) == 1.0.

    An all-zero (or empty) buffer is left untouched.

    Returns:
        The same buffer
    """
    if samples.size == 0:
        return samples
    peak = float(np.max(np.abs(samples)))
    if peak == 0.0:
        return samples
    return gain(1.0 / peak, samples)


class ButterworthBandpass:
    """Stateful Butterworth bandpass evaluated one sample at a time.

    Coefficients come from scipy.signal.butter as second-order sections;
    each section runs in transposed direct form II with its own two-slot
    state, so the cascade can be driven through apply_filter().

    Args:
        order: Prototype order (the bandpass has 2*order poles)
        sample_rate: Sample rate (Hz)
        center_hz: Center of the pass band (Hz)
        width_hz: Width of the pass band (Hz)

    Raises:
        ValueError: If the band edges do not lie strictly inside (0, fs/2)
    """

    def __init__(self, order: int, sample_rate: float, center_hz: float, width_hz: float):
        low = center_hz - width_hz / 2.0
        high = center_hz + width_hz / 2.0
        nyquist = sample_rate / 2.0
        if not 0.0 < low < high < nyquist:
            raise ValueError(
                f"Invalid band {low:.1f}-{high:.1f} Hz for sample rate {sample_rate} Hz"
            )

        self.order = order
        self.sample_rate = sample_rate
        self.low_hz = low
        self.high_hz = high

        sos = signal.butter(order, [low, high], btype='band', fs=sample_rate, output='sos')
        # (b0, b1, b2, a1, a2) per section; scipy normalizes a0 to 1
        self._sections: List[tuple] = [
            (float(s[0]), float(s[1]), float(s[2]), float(s[4]), float(s[5]))
            for s in sos
        ]
        self._state: List[List[float]] = []
        self.reset()

    def reset(self) -> None:
        """Clear the delay state of every section."""
        self._state = [[0.0, 0.0] for _ in self._sections]

    def filter(self, sample: float) -> float:
        x = sample
        for (b0, b1, b2, a1, a2), z in zip(self._sections, self._state):
            y = b0 * x + z[0]
            z[0] = b1 * x - a1 * y + z[1]
            z[1] = b2 * x - a2 * y
            x = y
        return x

    __call__ = filter


def heartbeat_band_edges(tempo_bpm: float) -> Tuple[float, float]:
    """(low_hz, high_hz) of the heartbeat bandpass at a tempo."""
    return BANDPASS_LOW_HZ, BANDPASS_HIGH_OFFSET_HZ + tempo_bpm


def heartbeat_bandpass(tempo_bpm: float, sample_rate: int) -> ButterworthBandpass:
    """Third-order bandpass simulating the abdomen, from 20 Hz to 140 + tempo Hz."""
    low_hz, high_hz = heartbeat_band_edges(tempo_bpm)
    return ButterworthBandpass(
        order=3,
        sample_rate=sample_rate,
        center_hz=(low_hz + high_hz) / 2.0,
        width_hz=high_hz - low_hz,
    )
