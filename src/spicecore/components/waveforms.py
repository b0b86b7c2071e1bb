# src/spicecore/components/waveforms.py
"""
Time-domain waveforms for independent sources: PULSE, SIN, PWL and EXP.

Each waveform is a frozen dataclass holding SI floats and exposing
`value_at(t)`. `waveform_from_mapping` builds one from the raw mapping found
in a netlist (`{"kind": "pulse", "v1": 0, "v2": "1.8 V", ...}`), converting
quantity strings with pint.
"""
import bisect
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Tuple, Union

from ..units import to_si_magnitude

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PulseWaveform:
    """Trapezoidal pulse train. A non-positive or infinite period means a single pulse."""
    v1: float
    v2: float
    delay: float = 0.0
    rise: float = 0.0
    fall: float = 0.0
    width: float = math.inf
    period: float = math.inf

    kind = "pulse"

    def value_at(self, t: float) -> float:
        if t < self.delay:
            return self.v1
        local = t - self.delay
        if 0.0 < self.period < math.inf:
            local = local % self.period
        if local < self.rise:
            return self.v1 + (self.v2 - self.v1) * (local / self.rise)
        if local < self.rise + self.width:
            return self.v2
        if local < self.rise + self.width + self.fall:
            return self.v2 + (self.v1 - self.v2) * ((local - self.rise - self.width) / self.fall)
        return self.v1


@dataclass(frozen=True)
class SinWaveform:
    """Damped sine. `phase` is in degrees."""
    offset: float
    amplitude: float
    frequency: float
    delay: float = 0.0
    damping: float = 0.0
    phase: float = 0.0

    kind = "sin"

    def value_at(self, t: float) -> float:
        if t < self.delay:
            return self.offset
        td = t - self.delay
        damp_factor = math.exp(-self.damping * td) if self.damping > 0 else 1.0
        return self.offset + self.amplitude * damp_factor * math.sin(
            2 * math.pi * self.frequency * td + math.radians(self.phase)
        )


@dataclass(frozen=True)
class PwlWaveform:
    """Piecewise-linear table; held constant before the first and after the last point."""
    times: Tuple[float, ...]
    values: Tuple[float, ...]

    kind = "pwl"

    def value_at(self, t: float) -> float:
        if t <= self.times[0]:
            return self.values[0]
        if t >= self.times[-1]:
            return self.values[-1]
        i = bisect.bisect_left(self.times, t)
        t0, t1 = self.times[i - 1], self.times[i]
        v0, v1 = self.values[i - 1], self.values[i]
        if t1 == t0:
            return v1
        return v0 + (t - t0) / (t1 - t0) * (v1 - v0)


@dataclass(frozen=True)
class ExpWaveform:
    """Exponential rise towards v2 starting at td1, and decay back towards v1 from td2."""
    v1: float
    v2: float
    tau1: float
    td1: float = 0.0
    td2: float = math.inf
    tau2: float = 0.0

    kind = "exp"

    def value_at(self, t: float) -> float:
        if t < self.td1:
            return self.v1
        value = self.v1 + (self.v2 - self.v1) * (1 - math.exp(-(t - self.td1) / self.tau1))
        if t >= self.td2:
            value += (self.v1 - self.v2) * (1 - math.exp(-(t - self.td2) / self.tau2))
        return value


Waveform = Union[PulseWaveform, SinWaveform, PwlWaveform, ExpWaveform]


def _field(spec: Mapping[str, Any], name: str, unit: str, default: Any = None) -> float:
    if name not in spec or spec[name] is None:
        if default is None:
            raise ValueError(f"Waveform field '{name}' is required.")
        return default
    return to_si_magnitude(spec[name], unit)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def waveform_from_mapping(spec: Mapping[str, Any], level_unit: str) -> Waveform:
    """
    Builds a waveform from its raw netlist mapping.

    Args:
        spec: Mapping with a 'kind' key ('pulse', 'sin', 'pwl', 'exp') and the
              kind's fields. Values may be numbers or pint quantity strings.
        level_unit: Unit of the source level ('volt' or 'ampere').

    Raises:
        ValueError: Unknown kind, missing field or an invalid value.
        pint.DimensionalityError: A field with the wrong physical dimension.
    """
    kind = str(spec.get('kind', '')).lower()

    if kind == 'pulse':
        wf = PulseWaveform(
            v1=_field(spec, 'v1', level_unit),
            v2=_field(spec, 'v2', level_unit),
            delay=_field(spec, 'delay', 'second', 0.0),
            rise=_field(spec, 'rise', 'second', 0.0),
            fall=_field(spec, 'fall', 'second', 0.0),
            width=_field(spec, 'width', 'second', math.inf),
            period=_field(spec, 'period', 'second', math.inf),
        )
        _require(wf.delay >= 0 and wf.rise >= 0 and wf.fall >= 0 and wf.width >= 0,
                 "PULSE delay, rise, fall and width must be non-negative.")
        return wf

    if kind == 'sin':
        wf = SinWaveform(
            offset=_field(spec, 'offset', level_unit),
            amplitude=_field(spec, 'amplitude', level_unit),
            frequency=_field(spec, 'frequency', 'hertz'),
            delay=_field(spec, 'delay', 'second', 0.0),
            damping=_field(spec, 'damping', '1 / second', 0.0),
            phase=_field(spec, 'phase', 'dimensionless', 0.0),
        )
        _require(wf.frequency >= 0, "SIN frequency must be non-negative.")
        return wf

    if kind == 'pwl':
        points = spec.get('points') or []
        _require(len(points) > 0, "PWL waveform needs at least one (time, value) point.")
        times, values = [], []
        for point in points:
            _require(len(point) == 2, f"PWL point {point!r} must be a (time, value) pair.")
            times.append(to_si_magnitude(point[0], 'second'))
            values.append(to_si_magnitude(point[1], level_unit))
        _require(all(t1 >= t0 for t0, t1 in zip(times, times[1:])),
                 "PWL times must be non-decreasing.")
        return PwlWaveform(times=tuple(times), values=tuple(values))

    if kind == 'exp':
        tau1 = _field(spec, 'tau1', 'second')
        wf = ExpWaveform(
            v1=_field(spec, 'v1', level_unit),
            v2=_field(spec, 'v2', level_unit),
            tau1=tau1,
            td1=_field(spec, 'td1', 'second', 0.0),
            td2=_field(spec, 'td2', 'second', math.inf),
            tau2=_field(spec, 'tau2', 'second', tau1),
        )
        _require(wf.tau1 > 0 and wf.tau2 > 0, "EXP time constants must be positive.")
        _require(wf.td2 >= wf.td1, "EXP td2 must not precede td1.")
        return wf

    raise ValueError(f"Unknown waveform kind '{spec.get('kind')}'. Expected one of: pulse, sin, pwl, exp.")

