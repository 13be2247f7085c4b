"""
Chest/abdomen resonance peaking-filter coefficients.

The table holds a peaking filter centred on 110 Hz with a 120 Hz
bandwidth for each supported sample rate, equivalent to:

    from scipy import signal
    w0 = 110 / (fs / 2)
    b, a = signal.iirpeak(w0, w0 / (120 / (fs / 2)))

Sample rates absent from the table cannot be filtered.
"""

from types import MappingProxyType
from typing import List, Mapping, Sequence

from scipy import signal

from heartbeat.iir import FilterCoefficients

RESONANCE_CENTER_HZ = 110.0
RESONANCE_BANDWIDTH_HZ = 120.0


class UnsupportedSampleRateError(ValueError):
    """Raised when no resonance coefficients exist for a sample rate."""

    def __init__(self, sample_rate, supported: Sequence[int] = ()):
        self.sample_rate = sample_rate
        self.supported = list(supported)
        message = f"Unsupported sample rate for filtering: {sample_rate}"
        if self.supported:
            message += f" (supported: {format_sample_rates(self.supported)})"
        super().__init__(message)


CHEST_RESONANCE_COEFFS: Mapping[int, FilterCoefficients] = MappingProxyType({
    4000: FilterCoefficients(
        a=[1.0, -1.80006264, 0.82727195],
        b=[0.08636403, 0.0, -0.08636403]),
    8000: FilterCoefficients(
        a=[1.0, -1.90280667, 0.90992999],
        b=[0.04503501, 0.0, -0.04503501]),
    11025: FilterCoefficients(
        a=[1.0, -1.9300491, 0.93384782],
        b=[0.03307609, 0.0, -0.03307609]),
    22050: FilterCoefficients(
        a=[1.0, -1.96541147, 0.96637737],
        b=[0.01681132, 0.0, -0.01681132]),
    32000: FilterCoefficients(
        a=[1.0, -1.9762503, 0.97671134],
        b=[0.01164433, 0.0, -0.01164433]),
    44100: FilterCoefficients(
        a=[1.0, -1.98280387, 0.9830474],
        b=[0.0084763, 0.0, -0.0084763]),
    48000: FilterCoefficients(
        a=[1.0, -1.98420842, 0.98441413],
        b=[0.00779294, 0.0, -0.00779294]),
    64000: FilterCoefficients(
        a=[1.0, -1.98817194, 0.98828788],
        b=[0.00585606, 0.0, -0.00585606]),
    88200: FilterCoefficients(
        a=[1.0, -1.99142664, 0.99148778],
        b=[0.00425611, 0.0, -0.00425611]),
    96000: FilterCoefficients(
        a=[1.0, -1.99212507, 0.9921767],
        b=[0.00391165, 0.0, -0.00391165]),
    192000: FilterCoefficients(
        a=[1.0, -1.99606777, 0.9960807],
        b=[0.00195965, 0.0, -0.00195965]),
})


def supported_sample_rates(table: Mapping[int, FilterCoefficients] = CHEST_RESONANCE_COEFFS) -> List[int]:
    """Sample rates for which filtered synthesis is possible, ascending."""
    return sorted(table)


def format_sample_rates(rates: Sequence[int]) -> str:
    return ", ".join(str(rate) for rate in rates)


def lookup_resonance(sample_rate: int,
                     table: Mapping[int, FilterCoefficients] = CHEST_RESONANCE_COEFFS) -> FilterCoefficients:
    """Return the resonance coefficients for an exact sample rate.

    Raises:
        UnsupportedSampleRateError: If the rate is not in the table
    """
    try:
        return table[sample_rate]
    except KeyError:
        raise UnsupportedSampleRateError(sample_rate, supported_sample_rates(table)) from None


def design_resonance_coefficients(sample_rate: float,
                                  center_hz: float = RESONANCE_CENTER_HZ,
                                  bandwidth_hz: float = RESONANCE_BANDWIDTH_HZ) -> FilterCoefficients:
    """Compute peaking-filter coefficients with scipy.signal.iirpeak.

    Used to derive and check table entries; synthesis only ever reads the
    static table.
    """
    nyquist = sample_rate / 2.0
    w0 = center_hz / nyquist
    q = w0 / (bandwidth_hz / nyquist)
    b, a = signal.iirpeak(w0, q)
    return FilterCoefficients(a=a, b=b)
