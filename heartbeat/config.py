"""
Synthesis configuration loaded from YAML.

Example (heartbeat/data/default.yaml):

    synthesis:
      tempo_bpm: 60
      num_beats: 10
      sample_rate: 44100
      filtered: true
      seed: null
    output:
      directory: output
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from heartbeat.resonance import CHEST_RESONANCE_COEFFS, lookup_resonance
from heartbeat.synth import ParameterError, check_filter_band, compute_timing, total_sample_count

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "default.yaml"
DEFAULT_OUTPUT_DIR = "output"


class ConfigError(ValueError):
    """Raised for malformed configuration files."""


@dataclass
class SynthesisParameters:
    """Everything needed for one synthesis call."""
    tempo_bpm: float = 60.0
    num_beats: int = 10
    sample_rate: int = 44100
    filtered: bool = True
    seed: Optional[int] = None

    def validate(self, resonance_table=CHEST_RESONANCE_COEFFS) -> "SynthesisParameters":
        """Check the parameters can be synthesized.

        Raises:
            ParameterError: Invalid tempo, beat count, sample rate or seed
                or a filtered tempo whose bandpass reaches Nyquist
            UnsupportedSampleRateError: Filtered at an unsupported rate
        """
        total_sample_count(self.tempo_bpm, self.num_beats, self.sample_rate)
        compute_timing(self.tempo_bpm, self.sample_rate)
        if not isinstance(self.filtered, bool):
            raise ParameterError(f"filtered must be true or false, got {self.filtered!r}")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ParameterError(f"seed must be an integer or null, got {self.seed!r}")
        if self.filtered:
            lookup_resonance(self.sample_rate, resonance_table)
            check_filter_band(self.tempo_bpm, self.sample_rate)
        return self


@dataclass
class RenderConfig:
    """Synthesis parameters plus where to write the result."""
    synthesis: SynthesisParameters
    output_dir: Path


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping, not {type(section).__name__}")
    return section


def parse_config(config: Optional[Dict[str, Any]]) -> RenderConfig:
    """Build a RenderConfig from an already-parsed YAML document.

    Missing keys fall back to SynthesisParameters defaults; unknown keys
    in the synthesis section are rejected.
    """
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError("Config root must be a mapping")

    synthesis_cfg = _section(config, 'synthesis')
    known = set(SynthesisParameters.__dataclass_fields__)
    unknown = set(synthesis_cfg) - known
    if unknown:
        raise ConfigError(f"Unknown synthesis keys: {', '.join(sorted(unknown))}")

    output_cfg = _section(config, 'output')
    output_dir = output_cfg.get('directory', DEFAULT_OUTPUT_DIR)
    if not isinstance(output_dir, str):
        raise ConfigError("'output.directory' must be a string")

    return RenderConfig(
        synthesis=SynthesisParameters(**synthesis_cfg),
        output_dir=Path(output_dir),
    )


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> RenderConfig:
    """Load and parse a YAML config file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the YAML is invalid or has the wrong structure
    """
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config {config_path}: {e}")

    return parse_config(config)
