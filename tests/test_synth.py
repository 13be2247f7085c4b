"""
Tests for the heartbeat synthesizer.

Validates timing arithmetic, half-beat and beat structure, buffer lengths,
normalization, filtering, error handling and per-instance randomness.
"""

import math
import threading

import numpy as np
import pytest

from heartbeat.iir import FilterCoefficients
from heartbeat.resonance import UnsupportedSampleRateError
from heartbeat.synth import (
    EKG_SEGMENTS,
    BeatTiming,
    HeartbeatSynthesizer,
    ParameterError,
    check_filter_band,
    compute_timing,
    synthesize_beats_f64,
    synthesize_beats_pcm16,
    synthesize_half_beat,
    total_sample_count,
)

IDENTITY = FilterCoefficients(a=[1.0], b=[1.0])


def identity_bandpass(tempo_bpm, sample_rate):
    return lambda x: x


class TestTiming:
    """Test compute_timing() and total_sample_count()."""

    def test_60_bpm_44100(self):
        timing = compute_timing(60, 44100)
        assert timing == BeatTiming(
            beat_samples=44100,
            half_beat_samples=6615,
            short_pause_samples=7718,
            long_pause_samples=23152,
        )

    def test_half_beat_capped_at_150ms(self):
        """Slow tempos keep a 0.15 s half-beat."""
        timing = compute_timing(30, 8000)
        assert timing.half_beat_samples == 1200
        assert timing.beat_samples == 16000

    def test_half_beat_scales_with_fast_tempo(self):
        """Above 60 BPM the half-beat is 15% of the beat."""
        timing = compute_timing(120, 8000)
        assert timing.beat_samples == 4000
        assert timing.half_beat_samples == 600

    @pytest.mark.parametrize("tempo", [40, 60, 72.5, 100, 150, 190])
    @pytest.mark.parametrize("rate", [4000, 44100, 48000])
    def test_pauses_fill_the_beat(self, tempo, rate):
        """Two half-beats plus both pauses never exceed the beat."""
        timing = compute_timing(tempo, rate)
        used = 2 * timing.half_beat_samples + timing.short_pause_samples + timing.long_pause_samples
        assert timing.short_pause_samples >= 0
        assert timing.long_pause_samples >= 0
        assert used <= timing.beat_samples

    def test_total_sample_count(self):
        assert total_sample_count(100, 10, 44100) == 264600
        assert total_sample_count(60, 1, 8000) == 8000
        assert total_sample_count(70, 7, 8000) == 48000

    def test_extreme_tempo_rejected(self):
        """No room for a half-beat is a parameter error, not a broken buffer."""
        with pytest.raises(ParameterError):
            compute_timing(1e7, 4000)

    @pytest.mark.parametrize("tempo", [0, -60, float('nan'), float('inf'), "60", None, True])
    def test_invalid_tempo(self, tempo):
        with pytest.raises(ParameterError):
            total_sample_count(tempo, 1, 44100)

    @pytest.mark.parametrize("num_beats", [0, -1, 1.5, True])
    def test_invalid_beat_count(self, num_beats):
        with pytest.raises(ParameterError):
            total_sample_count(60, num_beats, 44100)

    @pytest.mark.parametrize("rate", [0, -44100, 44100.0])
    def test_invalid_sample_rate(self, rate):
        with pytest.raises(ParameterError):
            compute_timing(60, rate)

    def test_parameter_error_is_value_error(self):
        with pytest.raises(ValueError):
            compute_timing(-1, 44100)


class TestHalfBeat:
    """Test single half-beat synthesis."""

    def test_length(self):
        """6615 samples is the half-beat at 60 BPM and 44100 Hz."""
        assert len(synthesize_half_beat(6615)) == 6615

    @pytest.mark.parametrize("length", [1, 2, 10, 97, 600, 6615, 28800])
    def test_length_any_positive(self, length):
        rng = np.random.default_rng(length)
        assert len(synthesize_half_beat(length, rng)) == length

    def test_invalid_length(self):
        with pytest.raises(ParameterError):
            synthesize_half_beat(0)

    def test_shape(self):
        """Starts and ends silent, R wave is the positive peak, S/Q dip below zero."""
        half = synthesize_half_beat(6615, np.random.default_rng(0))
        assert half[0] == 0.0
        assert half[-1] == 0.0
        assert 0.74 < half.max() <= 1.25
        assert -0.375 <= half.min() < 0.0

    def test_silent_gap_after_p_wave(self):
        """The PR gap leaves zeros between the P and Q segments."""
        half = synthesize_half_beat(6615, np.random.default_rng(4))
        nonzero = np.flatnonzero(half)
        gaps = np.diff(nonzero)
        # P->Q and S->T gaps are both hundreds of samples long
        assert np.sum(gaps > 100) >= 2

    def test_segments_fit(self):
        """Even maximal jitter leaves the last sample untouched."""
        nominal = sum(1.0 / segment.divider for segment in EKG_SEGMENTS)
        assert nominal * 1.25 < 1.0

    def test_seeded_reproducible(self):
        a = synthesize_half_beat(2000, np.random.default_rng(42))
        b = synthesize_half_beat(2000, np.random.default_rng(42))
        c = synthesize_half_beat(2000, np.random.default_rng(43))
        assert np.array_equal(a, b)
        assert not np.array_equal(a, c)

    def test_jitter_varies_between_calls(self):
        synthesizer = HeartbeatSynthesizer(filtered=False, seed=1)
        first = synthesizer.synthesize_half_beat(3000)
        second = synthesizer.synthesize_half_beat(3000)
        assert not np.array_equal(first, second)


class TestBeat:
    """Test one full "dum-dum" beat."""

    def test_unfiltered_layout(self):
        """Half-beat, short silence, half-beat, long silence."""
        timing = compute_timing(60, 8000)
        synthesizer = HeartbeatSynthesizer(sample_rate=8000, filtered=False, seed=3)
        beat = synthesizer.synthesize_beat(60, timing)

        half = timing.half_beat_samples
        second_start = half + timing.short_pause_samples
        assert len(beat) == timing.beat_samples
        assert np.any(beat[:half] != 0.0)
        assert np.all(beat[half:second_start] == 0.0)
        assert np.any(beat[second_start:second_start + half] != 0.0)
        assert np.all(beat[second_start + half:] == 0.0)

    def test_normalized(self):
        for filtered in (False, True):
            synthesizer = HeartbeatSynthesizer(sample_rate=4000, filtered=filtered, seed=8)
            beat = synthesizer.synthesize_beat(75)
            assert np.max(np.abs(beat)) == pytest.approx(1.0)

    def test_filtering_changes_signal(self):
        plain = HeartbeatSynthesizer(sample_rate=4000, filtered=False, seed=5).synthesize_beat(60)
        filtered = HeartbeatSynthesizer(sample_rate=4000, filtered=True, seed=5).synthesize_beat(60)
        assert not np.allclose(plain, filtered)
        # Filter ringing spills into the pause after the first half-beat
        timing = compute_timing(60, 4000)
        pause = slice(timing.half_beat_samples, timing.half_beat_samples + timing.short_pause_samples)
        assert np.all(plain[pause] == 0.0)
        assert np.any(filtered[pause] != 0.0)

    def test_identity_filters_match_unfiltered(self):
        """With pass-through filters injected, filtered output equals unfiltered."""
        filtered = HeartbeatSynthesizer(
            sample_rate=4000,
            filtered=True,
            seed=21,
            resonance_table={4000: IDENTITY},
            bandpass_factory=identity_bandpass,
        ).synthesize_beat(90)
        plain = HeartbeatSynthesizer(sample_rate=4000, filtered=False, seed=21).synthesize_beat(90)
        assert np.allclose(filtered, plain)


class TestBeats:
    """Test multi-beat synthesis and the public entry points."""

    def test_end_to_end_length_and_peak(self):
        """100 BPM, 10 beats, 44100 Hz, filtered: 264600 samples within [-1, 1]."""
        samples = synthesize_beats_f64(100, 10, 44100, True, np.random.default_rng(1))
        assert len(samples) == 264600
        assert samples.dtype == np.float64
        assert np.max(np.abs(samples)) <= 1.0 + 1e-12
        assert np.max(np.abs(samples)) == pytest.approx(1.0)

    @pytest.mark.parametrize("tempo,num_beats,rate", [
        (40, 2, 4000),
        (60, 3, 8000),
        (72.5, 4, 11025),
        (190, 5, 4000),
    ])
    @pytest.mark.parametrize("filtered", [False, True])
    def test_length_matches_total(self, tempo, num_beats, rate, filtered):
        samples = synthesize_beats_f64(tempo, num_beats, rate, filtered, np.random.default_rng(0))
        assert len(samples) == total_sample_count(tempo, num_beats, rate)

    def test_trailing_samples_padded_with_silence(self):
        """Per-beat flooring leaves the remainder of the aggregate count silent."""
        tempo, num_beats, rate = 70, 7, 8000
        timing = compute_timing(tempo, rate)
        total = total_sample_count(tempo, num_beats, rate)
        assert total - num_beats * timing.beat_samples == 1

        samples = synthesize_beats_f64(tempo, num_beats, rate, False, np.random.default_rng(2))
        assert len(samples) == total
        assert np.all(samples[num_beats * timing.beat_samples:] == 0.0)

    def test_each_beat_normalized_independently(self):
        tempo, num_beats, rate = 80, 4, 4000
        timing = compute_timing(tempo, rate)
        samples = synthesize_beats_f64(tempo, num_beats, rate, True, np.random.default_rng(6))
        for index in range(num_beats):
            beat = samples[index * timing.beat_samples:(index + 1) * timing.beat_samples]
            assert np.max(np.abs(beat)) == pytest.approx(1.0)

    def test_beats_are_rerandomized(self):
        tempo, rate = 60, 4000
        timing = compute_timing(tempo, rate)
        samples = synthesize_beats_f64(tempo, 2, rate, False, np.random.default_rng(7))
        first = samples[:timing.beat_samples]
        second = samples[timing.beat_samples:2 * timing.beat_samples]
        assert not np.array_equal(first, second)

    def test_pcm16(self):
        pcm = synthesize_beats_pcm16(60, 2, 8000, True, np.random.default_rng(3))
        assert pcm.dtype == np.int16
        assert len(pcm) == total_sample_count(60, 2, 8000)
        assert np.max(np.abs(pcm.astype(np.int32))) == 32767

    def test_pcm16_matches_f64(self):
        """PCM output is the quantized float output for the same seed."""
        f64 = synthesize_beats_f64(60, 1, 4000, False, np.random.default_rng(10))
        pcm = synthesize_beats_pcm16(60, 1, 4000, False, np.random.default_rng(10))
        assert np.array_equal(pcm, np.rint(f64 * 32767).astype(np.int16))

    def test_unsupported_rate_filtered(self):
        """Filtered synthesis at a rate without resonance coefficients fails outright."""
        with pytest.raises(UnsupportedSampleRateError):
            synthesize_beats_f64(60, 10, 50000, True)
        with pytest.raises(UnsupportedSampleRateError):
            synthesize_beats_pcm16(60, 10, 50000)

    def test_unsupported_rate_unfiltered_ok(self):
        samples = synthesize_beats_f64(60, 1, 50000, False)
        assert len(samples) == 50000

    def test_custom_resonance_table(self):
        """An injected table enables otherwise unsupported rates."""
        synthesizer = HeartbeatSynthesizer(
            sample_rate=50000, filtered=True, seed=0, resonance_table={50000: IDENTITY}
        )
        assert len(synthesizer.synthesize_beats(120, 2)) == total_sample_count(120, 2, 50000)

    def test_default_is_filtered(self):
        assert HeartbeatSynthesizer().filtered is True
        with pytest.raises(UnsupportedSampleRateError):
            HeartbeatSynthesizer(sample_rate=12345)

    def test_last_beat_truncated_to_total(self, monkeypatch):
        """Beats that overrun the aggregate count are cut at total_sample_count()."""
        tempo, num_beats, rate = 60, 2, 4000
        total = total_sample_count(tempo, num_beats, rate)
        overrun = BeatTiming(beat_samples=4001, half_beat_samples=600,
                             short_pause_samples=701, long_pause_samples=2100)
        assert num_beats * overrun.beat_samples - total == 2
        monkeypatch.setattr("heartbeat.synth.compute_timing", lambda tempo_bpm, sample_rate: overrun)

        samples = HeartbeatSynthesizer(sample_rate=rate, filtered=False, seed=4).synthesize_beats(tempo, num_beats)

        reference = HeartbeatSynthesizer(sample_rate=rate, filtered=False, seed=4)
        first = reference.synthesize_beat(tempo, overrun)
        second = reference.synthesize_beat(tempo, overrun)
        assert len(samples) == total
        assert np.array_equal(samples[:4001], first)
        assert np.array_equal(samples[4001:], second[:total - 4001])


class TestFilterBand:
    """Test that filtered tempos keep the bandpass below Nyquist."""

    def test_edges(self):
        """At 4000 Hz the upper edge 140 + tempo must stay under 2000 Hz."""
        check_filter_band(1859, 4000)
        with pytest.raises(ParameterError, match="bandpass"):
            check_filter_band(1860, 4000)

    def test_filtered_high_tempo_rejected(self):
        with pytest.raises(ParameterError):
            synthesize_beats_f64(1900, 1, 4000, True, np.random.default_rng(0))
        with pytest.raises(ParameterError):
            synthesize_beats_pcm16(1900, 1, 4000, True, np.random.default_rng(0))

    def test_unfiltered_high_tempo_ok(self):
        samples = synthesize_beats_f64(1900, 1, 4000, False, np.random.default_rng(0))
        assert len(samples) == total_sample_count(1900, 1, 4000)

    def test_rejected_before_filtering(self):
        """The band check fires before any beat reaches the bandpass."""
        def unreachable_bandpass(tempo_bpm, sample_rate):
            raise AssertionError("bandpass built for an invalid band")

        synthesizer = HeartbeatSynthesizer(sample_rate=4000, filtered=True, seed=0,
                                           bandpass_factory=unreachable_bandpass)
        with pytest.raises(ParameterError):
            synthesizer.synthesize_beats(1900, 1)
        with pytest.raises(ParameterError):
            synthesizer.synthesize_beat(1900)


class TestConcurrency:
    """Test that separate synthesizers do not share random state."""

    def test_threads_reproduce_sequential_output(self):
        def render(seed):
            return HeartbeatSynthesizer(sample_rate=4000, filtered=True, seed=seed).synthesize_beats(90, 3)

        expected = {seed: render(seed) for seed in (11, 12, 13, 14)}
        results = {}
        lock = threading.Lock()

        def worker(seed):
            output = render(seed)
            with lock:
                results[seed] = output

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in expected]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30.0)

        assert set(results) == set(expected)
        for seed, output in expected.items():
            assert np.array_equal(results[seed], output)

    def test_total_count_formula(self):
        assert total_sample_count(72.5, 3, 48000) == math.floor(60.0 / 72.5 * 3 * 48000)
