"""
Heartbeat - procedural heartbeat ("dum-dum") audio synthesis.

Modules:
    window: Hann window for EKG segment envelopes
    iir: Direct-form I IIR filter with ring-buffer state
    filters: In-place per-sample filtering, gain, normalization, bandpass
    resonance: Static chest resonance coefficient table
    synth: Heartbeat waveform synthesizer
    pcm: PCM16 quantization and WAV output
    config: YAML synthesis configuration
    render: WAV rendering CLI (python -m heartbeat)
"""

__version__ = "0.1.0"

# Note: Modules are imported on demand, e.g. `from heartbeat.synth import HeartbeatSynthesizer`.
