#!/usr/bin/env python3
"""
Heartbeat Renderer - write synthesized heartbeats to WAV files.

Writes mono 16-bit WAV files named Heartbeats_<bpm>bpm.wav, either for a
single tempo or for every integer tempo in a range.

USAGE:
    # Defaults from heartbeat/data/default.yaml (60 BPM, 10 beats, 44100 Hz)
    python3 -m heartbeat

    # Custom tempo, beat count and sample rate
    python3 -m heartbeat --tempo 100 --beats 20 --sample-rate 48000

    # Unfiltered (raw EKG-shaped) beats into a specific folder
    python3 -m heartbeat --unfiltered --output-dir /tmp/beats

    # Filtered even though the config file says filtered: false
    python3 -m heartbeat --config beats.yaml --filtered

    # One single-beat file per tempo from 40 to 190 BPM (--tempo not allowed)
    python3 -m heartbeat --sweep 40 190 --beats 1

    # Reproducible jitter
    python3 -m heartbeat --seed 42
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from heartbeat.config import DEFAULT_CONFIG_PATH, SynthesisParameters, load_config
from heartbeat.log import get_logger, set_level
from heartbeat.pcm import write_wav
from heartbeat.resonance import format_sample_rates, supported_sample_rates
from heartbeat.synth import HeartbeatSynthesizer, ParameterError

logger = get_logger("render")


def heartbeat_filename(tempo_bpm: float) -> str:
    """File name for a tempo (fractional BPM is truncated)."""
    return f"Heartbeats_{int(tempo_bpm)}bpm.wav"


def write_heartbeat_file(
    folder: Union[str, Path],
    tempo_bpm: float,
    num_beats: int,
    sample_rate: int,
    filtered: bool = True,
    rng: Optional[np.random.Generator] = None,
) -> Path:
    """Synthesize heartbeats and write them to <folder>/Heartbeats_<bpm>bpm.wav.

    The folder is created if needed; an existing file is overwritten.

    Args:
        folder: Output directory
        tempo_bpm: Beats per minute
        num_beats: Number of beats
        sample_rate: Sample rate (Hz)
        filtered: Apply bandpass and chest resonance filtering
        rng: Random generator for jitter (fresh unseeded one if None)

    Returns:
        Path of the written WAV file

    Raises:
        ParameterError: For invalid synthesis parameters
        UnsupportedSampleRateError: If filtered at an unsupported rate
    """
    synthesizer = HeartbeatSynthesizer(sample_rate=sample_rate, filtered=filtered, rng=rng)
    pcm = synthesizer.synthesize_pcm16(tempo_bpm, num_beats)

    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    path = write_wav(folder / heartbeat_filename(tempo_bpm), pcm, sample_rate)

    peak = int(np.abs(pcm.astype(np.int32)).max()) if len(pcm) else 0
    logger.info(f"Wrote {path} ({len(pcm)} samples, peak {peak})")
    return path


def render_sweep(
    folder: Union[str, Path],
    min_bpm: int,
    max_bpm: int,
    num_beats: int,
    sample_rate: int,
    filtered: bool = True,
    rng: Optional[np.random.Generator] = None,
) -> List[Path]:
    """Write one file per integer tempo in [min_bpm, max_bpm]."""
    if min_bpm > max_bpm:
        raise ParameterError(f"Sweep range is empty: {min_bpm}..{max_bpm}")
    if rng is None:
        rng = np.random.default_rng()

    paths = []
    for tempo_bpm in range(min_bpm, max_bpm + 1):
        paths.append(write_heartbeat_file(folder, tempo_bpm, num_beats, sample_rate, filtered, rng))
    logger.info(f"Rendered {len(paths)} files for {min_bpm}-{max_bpm} BPM into {folder}")
    return paths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Heartbeat synthesis - render heartbeat WAV files")
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to YAML config file (default: heartbeat/data/default.yaml)",
    )
    parser.add_argument(
        "--tempo",
        type=float,
        default=None,
        help="Tempo in beats per minute (overrides config)",
    )
    parser.add_argument(
        "--beats",
        type=int,
        default=None,
        help="Number of beats per file (overrides config)",
    )
    parser.add_argument(
        "--sample-rate",
        type=int,
        default=None,
        help="Sample rate in Hz (overrides config); filtering requires one of "
             f"{format_sample_rates(supported_sample_rates())}",
    )
    filtering = parser.add_mutually_exclusive_group()
    filtering.add_argument(
        "--filtered",
        dest="filtered",
        action="store_true",
        default=None,
        help="Apply the bandpass and chest resonance filters (overrides config)",
    )
    filtering.add_argument(
        "--unfiltered",
        dest="filtered",
        action="store_false",
        help="Skip the bandpass and chest resonance filters (overrides config)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible segment jitter (overrides config)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory for WAV files (overrides config)",
    )
    parser.add_argument(
        "--sweep",
        type=int,
        nargs=2,
        metavar=("MIN_BPM", "MAX_BPM"),
        default=None,
        help="Render one file per integer tempo in MIN_BPM..MAX_BPM (inclusive); "
             "cannot be combined with --tempo",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("HEARTBEAT_LOG_LEVEL", "INFO"),
        help="Logging verbosity (default: INFO)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Exits with status 2 on bad arguments (including --tempo with --sweep)
    and with status 1 on invalid config, invalid parameters,
    unsupported sample rates or write failures.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.sweep and args.tempo is not None:
        parser.error("--tempo cannot be used with --sweep; the sweep range sets the tempos")

    set_level(args.log_level)

    try:
        config = load_config(args.config)
        params = config.synthesis
        params = SynthesisParameters(
            tempo_bpm=args.tempo if args.tempo is not None else params.tempo_bpm,
            num_beats=args.beats if args.beats is not None else params.num_beats,
            sample_rate=args.sample_rate if args.sample_rate is not None else params.sample_rate,
            filtered=args.filtered if args.filtered is not None else params.filtered,
            seed=args.seed if args.seed is not None else params.seed,
        )
        output_dir = Path(args.output_dir) if args.output_dir else config.output_dir

        if args.sweep:
            min_bpm, max_bpm = args.sweep
            for tempo_bpm in (min_bpm, max_bpm):
                SynthesisParameters(tempo_bpm, params.num_beats, params.sample_rate,
                                    params.filtered, params.seed).validate()
            render_sweep(output_dir, min_bpm, max_bpm, params.num_beats, params.sample_rate,
                         params.filtered, np.random.default_rng(params.seed))
        else:
            params.validate()
            write_heartbeat_file(output_dir, params.tempo_bpm, params.num_beats, params.sample_rate,
                                 params.filtered, np.random.default_rng(params.seed))
    except FileNotFoundError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except ValueError as e:
        # ConfigError, ParameterError and UnsupportedSampleRateError
        logger.error(f"{e}")
        sys.exit(1)
    except (OSError, RuntimeError) as e:
        logger.error(f"Failed to write output: {e}")
        sys.exit(1)

    return 0


if __name__ == "__main__":
    main()
