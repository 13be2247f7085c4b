"""
PCM16 conversion and WAV output.

Normalized float samples in [-1, 1] are scaled by 32767, rounded to the
nearest integer and clamped to the signed 16-bit range. WAV files are
written mono, 16-bit, through soundfile.
"""

from pathlib import Path
from typing import Union

import numpy as np
import soundfile as sf

PCM16_FULL_SCALE = 32767
PCM16_MIN = -32768
PCM16_MAX = 32767


def quantize(samples: np.ndarray) -> np.ndarray:
    """Convert float samples to signed 16-bit PCM, clamping out-of-range values.

    Args:
        samples: Float samples, nominally in [-1, 1]

    Returns:
        int16 array of the same length
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * PCM16_FULL_SCALE)
    return np.clip(scaled, PCM16_MIN, PCM16_MAX).astype(np.int16)


def dequantize(pcm: np.ndarray) -> np.ndarray:
    """Inverse of quantize() (up to rounding): int16 PCM back to float64."""
    return np.asarray(pcm, dtype=np.float64) / PCM16_FULL_SCALE


def write_wav(path: Union[str, Path], pcm: np.ndarray, sample_rate: int) -> Path:
    """Write mono 16-bit PCM samples to a WAV file (overwriting it).

    Args:
        path: Destination file
        pcm: int16 samples
        sample_rate: Frame rate (Hz)

    Returns:
        Path of the written file
    """
    path = Path(path)
    pcm = np.asarray(pcm)
    if pcm.dtype != np.int16:
        raise ValueError(f"Expected int16 PCM samples, got {pcm.dtype}")
    sf.write(str(path), pcm, int(sample_rate), subtype='PCM_16', format='WAV')
    return path
