#!/usr/bin/env python3
"""
Heartbeat Synthesis - procedural "dum-dum" heartbeat audio.

Each beat is built from two "half-beats", each one a sequence of
Hann-windowed segments modelled on the P, Q, R, S, T and U waves of an
EKG. Segment lengths and amplitudes are jittered independently within
[0.75, 1.25] of their nominal values, so no two beats are identical.

PIPELINE (per beat):
1. Timing: beat length, half-beat length and the two pauses, in samples
2. Half-beat 1 at 80% gain, short pause, half-beat 2, long pause
3. Optional filtering: Butterworth bandpass (20 Hz to 140+BPM Hz), then
   the chest resonance peaking filter for the sample rate
4. Peak normalization

Beats are laid back to back into one buffer of total_sample_count()
samples. Per-beat lengths are floored individually, so the buffer usually
ends with a few samples of silence; if float rounding makes the beats
overrun the aggregate count, the last beat is truncated.

USAGE:
    from heartbeat.synth import HeartbeatSynthesizer

    synthesizer = HeartbeatSynthesizer(sample_rate=44100, seed=42)
    samples = synthesizer.synthesize_beats(tempo_bpm=60, num_beats=10)
    pcm = synthesizer.synthesize_pcm16(tempo_bpm=60, num_beats=10)
"""

import math
import numbers
from dataclasses import dataclass
from typing import Callable, Mapping, NamedTuple, Optional

import numpy as np

from heartbeat.filters import (
    apply_filter,
    gain,
    heartbeat_band_edges,
    heartbeat_bandpass,
    normalize,
)
from heartbeat.iir import FilterCoefficients, IirFilter
from heartbeat.log import get_logger
from heartbeat.pcm import quantize
from heartbeat.resonance import CHEST_RESONANCE_COEFFS, lookup_resonance
from heartbeat.window import hann

logger = get_logger("synth")

# Longest half-beat, and its share of the beat when beats are short
MAX_HALF_BEAT_SEC = 0.15
HALF_BEAT_RATIO = 0.15

# Gain of the first half-beat relative to the second
FIRST_HALF_BEAT_GAIN = 0.8


class ParameterError(ValueError):
    """Raised for tempo/beat-count/sample-rate values that cannot be synthesized."""


class EkgSegment(NamedTuple):
    """One section of a half-beat.

    divider: nominal segment length is half_beat_length / divider
    amplitude: peak amplitude (sign included), None for a silent gap
    """
    name: str
    divider: float
    amplitude: Optional[float]


EKG_SEGMENTS = (
    EkgSegment("P", 9.0, 0.1),
    EkgSegment("PR", 8.0, None),
    EkgSegment("Q", 24.0, -0.1),
    EkgSegment("R", 6.0, 1.0),
    EkgSegment("S", 24.0, -0.3),
    EkgSegment("ST", 9.0, None),
    EkgSegment("T", 9.0, 0.2),
    EkgSegment("U", 11.0, 0.1),
)


@dataclass(frozen=True)
class BeatTiming:
    """Sample counts for one beat at a given tempo and sample rate."""
    beat_samples: int
    half_beat_samples: int
    short_pause_samples: int
    long_pause_samples: int


def _validate_tempo(tempo_bpm) -> float:
    if isinstance(tempo_bpm, bool) or not isinstance(tempo_bpm, numbers.Real):
        raise ParameterError(f"Tempo must be a number, got {tempo_bpm!r}")
    tempo_bpm = float(tempo_bpm)
    if not math.isfinite(tempo_bpm) or tempo_bpm <= 0:
        raise ParameterError(f"Tempo must be positive, got {tempo_bpm}")
    return tempo_bpm


def _validate_count(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ParameterError(f"{what} must be an integer, got {value!r}")
    if value <= 0:
        raise ParameterError(f"{what} must be positive, got {value}")
    return int(value)


def total_sample_count(tempo_bpm: float, num_beats: int, sample_rate: int) -> int:
    """Length of the buffer holding num_beats beats: floor(60/bpm * n * fs)."""
    tempo_bpm = _validate_tempo(tempo_bpm)
    num_beats = _validate_count(num_beats, "Beat count")
    sample_rate = _validate_count(sample_rate, "Sample rate")
    return int(math.floor((60.0 / tempo_bpm) * num_beats * sample_rate))


def compute_timing(tempo_bpm: float, sample_rate: int) -> BeatTiming:
    """Derive the sample schedule of a single beat.

    Raises:
        ParameterError: If the tempo/sample rate leave no room for a
            half-beat or produce a negative pause
    """
    tempo_bpm = _validate_tempo(tempo_bpm)
    sample_rate = _validate_count(sample_rate, "Sample rate")

    beat_dur = 60.0 / tempo_bpm
    half_beat_dur = min(MAX_HALF_BEAT_SEC, HALF_BEAT_RATIO * beat_dur)

    beat_samples = int(math.floor(beat_dur * sample_rate))
    half_beat_samples = int(math.floor(half_beat_dur * sample_rate))
    remaining = beat_samples - 2 * half_beat_samples
    short_pause = int(math.ceil(0.25 * remaining))
    long_pause = int(math.floor(0.75 * remaining))

    if half_beat_samples < 1:
        raise ParameterError(
            f"Tempo {tempo_bpm} BPM at {sample_rate} Hz leaves no samples for a half-beat"
        )
    if short_pause < 0 or long_pause < 0:
        raise ParameterError(
            f"Tempo {tempo_bpm} BPM at {sample_rate} Hz gives negative pauses "
            f"({short_pause}, {long_pause})"
        )

    return BeatTiming(beat_samples, half_beat_samples, short_pause, long_pause)


def check_filter_band(tempo_bpm: float, sample_rate: int) -> None:
    """Ensure the heartbeat bandpass at this tempo fits below Nyquist.

    Raises:
        ParameterError: If 140 + tempo Hz reaches sample_rate / 2
    """
    tempo_bpm = _validate_tempo(tempo_bpm)
    sample_rate = _validate_count(sample_rate, "Sample rate")
    low_hz, high_hz = heartbeat_band_edges(tempo_bpm)
    nyquist = sample_rate / 2.0
    if not 0.0 < low_hz < high_hz < nyquist:
        raise ParameterError(
            f"Tempo {tempo_bpm} BPM puts the bandpass at {low_hz:.0f}-{high_hz:.0f} Hz, "
            f"which does not fit below {nyquist:.0f} Hz at {sample_rate} Hz"
        )


class HeartbeatSynthesizer:
    """Generates heartbeat audio for a fixed sample rate.

    The synthesizer owns its random generator, so separate instances can
    run in separate threads; a single instance should not be shared
    between threads.

    Args:
        sample_rate: Output sample rate (Hz)
        filtered: Apply the bandpass and chest resonance filters
        rng: numpy Generator used for segment jitter
        seed: Seed for a fresh generator (ignored when rng is given)
        resonance_table: Sample rate -> resonance coefficients
        bandpass_factory: (tempo_bpm, sample_rate) -> per-sample filter

    Raises:
        ParameterError: If sample_rate is not a positive integer
        UnsupportedSampleRateError: If filtered and sample_rate is not in
            resonance_table
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        filtered: bool = True,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        resonance_table: Mapping[int, FilterCoefficients] = CHEST_RESONANCE_COEFFS,
        bandpass_factory: Callable[[float, int], Callable[[float], float]] = heartbeat_bandpass,
    ):
        self.sample_rate = _validate_count(sample_rate, "Sample rate")
        self.filtered = bool(filtered)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.bandpass_factory = bandpass_factory
        self.resonance = lookup_resonance(self.sample_rate, resonance_table) if self.filtered else None

    def _jitter(self) -> float:
        """Random factor in [0.75, 1.25)."""
        return 0.75 + self.rng.random() / 2.0

    def _segment_length(self, half_beat_length: int, divider: float) -> int:
        return int(math.floor(self._jitter() * half_beat_length / divider))

    def _ekg_segment(self, half_beat_length: int, divider: float, amplitude: float) -> np.ndarray:
        amp = self._jitter() * amplitude
        return gain(amp, hann(self._segment_length(half_beat_length, divider)))

    def synthesize_half_beat(self, length: int) -> np.ndarray:
        """One "dum" of the "dum-dum": EKG segments written back to back.

        Args:
            length: Half-beat length in samples

        Returns:
            float64 array of exactly `length` samples; whatever the
            segments do not cover stays silent
        """
        length = _validate_count(length, "Half-beat length")
        buffer = np.zeros(length, dtype=np.float64)
        cursor = 0
        for segment in EKG_SEGMENTS:
            if segment.amplitude is None:
                cursor += self._segment_length(length, segment.divider)
                continue
            samples = self._ekg_segment(length, segment.divider, segment.amplitude)
            # Jittered segment lengths total less than `length`
            n = max(0, min(len(samples), length - cursor))
            buffer[cursor:cursor + n] = samples[:n]
            cursor += len(samples)
        return buffer

    def synthesize_beat(self, tempo_bpm: float, timing: Optional[BeatTiming] = None) -> np.ndarray:
        """One normalized "dum-dum" beat of timing.beat_samples samples."""
        tempo_bpm = _validate_tempo(tempo_bpm)
        if timing is None:
            timing = compute_timing(tempo_bpm, self.sample_rate)
        if self.filtered:
            check_filter_band(tempo_bpm, self.sample_rate)

        beat = np.zeros(timing.beat_samples, dtype=np.float64)
        half = timing.half_beat_samples

        cursor = 0
        beat[cursor:cursor + half] = gain(FIRST_HALF_BEAT_GAIN, self.synthesize_half_beat(half))
        cursor += half + timing.short_pause_samples
        beat[cursor:cursor + half] = self.synthesize_half_beat(half)

        if self.filtered:
            apply_filter(self.bandpass_factory(tempo_bpm, self.sample_rate), beat)
            apply_filter(IirFilter(self.resonance), beat)

        return normalize(beat)

    def synthesize_beats(self, tempo_bpm: float, num_beats: int) -> np.ndarray:
        """num_beats independently jittered beats in one float64 buffer.

        Returns:
            Array of total_sample_count(tempo_bpm, num_beats, sample_rate)
            samples, each beat peak-normalized
        """
        total = total_sample_count(tempo_bpm, num_beats, self.sample_rate)
        timing = compute_timing(tempo_bpm, self.sample_rate)
        if self.filtered:
            check_filter_band(tempo_bpm, self.sample_rate)
        logger.debug(
            f"{num_beats} beats at {tempo_bpm} BPM, {self.sample_rate} Hz: "
            f"beat={timing.beat_samples} half={timing.half_beat_samples} "
            f"short={timing.short_pause_samples} long={timing.long_pause_samples} "
            f"total={total} filtered={self.filtered}"
        )

        output = np.zeros(total, dtype=np.float64)
        for index in range(num_beats):
            start = index * timing.beat_samples
            if start >= total:
                break
            beat = self.synthesize_beat(tempo_bpm, timing)
            end = min(start + len(beat), total)
            output[start:end] = beat[:end - start]

        trailing = total - num_beats * timing.beat_samples
        if trailing > 0:
            logger.debug(f"Padded {trailing} trailing samples of silence")
        elif trailing < 0:
            logger.debug(f"Truncated last beat by {-trailing} samples")
        return output

    def synthesize_pcm16(self, tempo_bpm: float, num_beats: int) -> np.ndarray:
        """synthesize_beats() quantized to signed 16-bit PCM."""
        return quantize(self.synthesize_beats(tempo_bpm, num_beats))


def synthesize_half_beat(length: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Single half-beat of `length` samples (sample rate does not matter here)."""
    return HeartbeatSynthesizer(filtered=False, rng=rng).synthesize_half_beat(length)


def synthesize_beats_f64(
    tempo_bpm: float,
    num_beats: int,
    sample_rate: int,
    filtered: bool = True,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Heartbeat samples as float64 in [-1, 1].

    Raises:
        ParameterError: For invalid tempo, beat count or sample rate, or a
            filtered tempo whose bandpass does not fit below Nyquist
        UnsupportedSampleRateError: If filtered and the rate has no
            resonance coefficients
    """
    synthesizer = HeartbeatSynthesizer(sample_rate=sample_rate, filtered=filtered, rng=rng)
    return synthesizer.synthesize_beats(tempo_bpm, num_beats)


def synthesize_beats_pcm16(
    tempo_bpm: float,
    num_beats: int,
    sample_rate: int,
    filtered: bool = True,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Heartbeat samples as int16 PCM."""
    return quantize(synthesize_beats_f64(tempo_bpm, num_beats, sample_rate, filtered, rng))
