# src/spicecore/simulation/config.py
import logging
import math
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

import pint

from ..constants import (
    DEFAULT_ABSTOL_A, DEFAULT_MAX_NEWTON_ITERATIONS, DEFAULT_MAX_VOLTAGE_STEP_V,
    DEFAULT_PROGRESS_INTERVAL, DEFAULT_RELTOL, DEFAULT_VNTOL_V, GMIN_SIEMENS,
)
from ..units import to_si_magnitude

logger = logging.getLogger(__name__)

#: Relative slack applied when counting sweep points and time steps, so that
#: e.g. (1.0 - 0.0) / 0.1 = 9.999999999999998 still yields 11 points.
_COUNT_TOLERANCE = 1e-9


class ConfigParsingError(ValueError):
    """Custom exception for errors during analysis or solver configuration parsing."""
    pass


# --- Solver options ---

@dataclass(frozen=True)
class SolverOptions:
    """
    Newton-Raphson tolerances and limits.

    Attributes:
        reltol: Relative tolerance on every unknown.
        vntol: Absolute tolerance on node voltages (V).
        abstol: Absolute tolerance on branch currents (A).
        max_iterations: Newton iteration cap per solve.
        max_voltage_step: Clamp on node-voltage updates for nonlinear circuits
                          (V); None disables damping.
        gmin: Conductance stamped across junctions (S).
        progress_interval: Transient steps / sweep points between progress callbacks.
    """
    reltol: float = DEFAULT_RELTOL
    vntol: float = DEFAULT_VNTOL_V
    abstol: float = DEFAULT_ABSTOL_A
    max_iterations: int = DEFAULT_MAX_NEWTON_ITERATIONS
    max_voltage_step: Optional[float] = DEFAULT_MAX_VOLTAGE_STEP_V
    gmin: float = GMIN_SIEMENS
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL

    def __post_init__(self):
        for name in ("reltol", "vntol", "abstol"):
            value = getattr(self, name)
            if not (value >= 0 and math.isfinite(value)):
                raise ConfigParsingError(f"Solver option '{name}' must be a finite non-negative number, got {value!r}.")
        if self.max_iterations < 1:
            raise ConfigParsingError(f"Solver option 'max_iterations' must be >= 1, got {self.max_iterations!r}.")
        if self.max_voltage_step is not None and not self.max_voltage_step > 0:
            raise ConfigParsingError(f"Solver option 'max_voltage_step' must be positive or None, got {self.max_voltage_step!r}.")
        if not self.gmin >= 0:
            raise ConfigParsingError(f"Solver option 'gmin' must be non-negative, got {self.gmin!r}.")
        if self.progress_interval < 1:
            raise ConfigParsingError(f"Solver option 'progress_interval' must be >= 1, got {self.progress_interval!r}.")

    _UNITS: ClassVar[Dict[str, str]] = {
        "reltol": "dimensionless",
        "vntol": "volt",
        "abstol": "ampere",
        "max_voltage_step": "volt",
        "gmin": "siemens",
    }

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "SolverOptions":
        """
        Builds options from a raw mapping (e.g. a netlist 'options' block).
        Keys are case-insensitive; values may be pint quantity strings.
        """
        if not raw:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        try:
            for key, value in raw.items():
                name = str(key).lower()
                if name not in known:
                    raise ConfigParsingError(f"Unknown solver option '{key}'. Valid options: {sorted(known)}.")
                if name == "max_voltage_step" and value is None:
                    kwargs[name] = None
                elif name in ("max_iterations", "progress_interval"):
                    if isinstance(value, bool) or int(value) != float(value):
                        raise ConfigParsingError(f"Solver option '{key}' must be an integer, got {value!r}.")
                    kwargs[name] = int(value)
                else:
                    kwargs[name] = to_si_magnitude(value, cls._UNITS[name])
        except ConfigParsingError:
            raise
        except (ValueError, TypeError, pint.PintError) as e:
            raise ConfigParsingError(f"Failed to parse solver options: {e}") from e
        return cls(**kwargs)


# --- Analysis configurations ---

def _probes(probes: Optional[Any]) -> Optional[Tuple[str, ...]]:
    return None if probes is None else tuple(str(p) for p in probes)


@dataclass(frozen=True)
class OpAnalysis:
    """DC operating point."""
    probes: Optional[Tuple[str, ...]] = None

    type: ClassVar[str] = "op"


@dataclass(frozen=True)
class TranAnalysis:
    """
    Transient analysis from t=0 to `stop` in steps of `step`. Only points with
    t >= `start` are recorded.
    """
    step: float
    stop: float
    start: float = 0.0
    probes: Optional[Tuple[str, ...]] = None

    type: ClassVar[str] = "tran"

    def __post_init__(self):
        if not (self.step > 0 and math.isfinite(self.step)):
            raise ConfigParsingError(f"Transient step must be a positive finite time, got {self.step!r}.")
        if not (self.stop > 0 and math.isfinite(self.stop)):
            raise ConfigParsingError(f"Transient stop must be a positive finite time, got {self.stop!r}.")
        if not (0 <= self.start <= self.stop):
            raise ConfigParsingError(f"Transient start must lie in [0, stop], got {self.start!r}.")
        object.__setattr__(self, 'probes', _probes(self.probes))

    @property
    def step_count(self) -> int:
        """Number of integration steps; the last one is shortened to end exactly at `stop`."""
        return max(1, math.ceil(self.stop / self.step * (1 - _COUNT_TOLERANCE)))

    def time_at(self, k: int) -> float:
        """Simulated time after `k` steps."""
        if k >= self.step_count:
            return self.stop
        return min(k * self.step, self.stop)


@dataclass(frozen=True)
class DcSweepAnalysis:
    """DC sweep of the named independent source from `start` to `stop` (inclusive) by `step`."""
    source: str
    start: float
    stop: float
    step: float
    probes: Optional[Tuple[str, ...]] = None

    type: ClassVar[str] = "dc"

    def __post_init__(self):
        if not self.source:
            raise ConfigParsingError("DC sweep needs the name of the source to sweep.")
        for name in ("start", "stop", "step"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigParsingError(f"DC sweep '{name}' must be finite.")
        if self.step == 0:
            raise ConfigParsingError("DC sweep step must be non-zero.")
        if (self.stop - self.start) / self.step < 0:
            raise ConfigParsingError(
                f"DC sweep step {self.step!r} points away from stop {self.stop!r} (start {self.start!r})."
            )
        object.__setattr__(self, 'probes', _probes(self.probes))

    @property
    def point_count(self) -> int:
        """floor((stop - start) / step) + 1, tolerant to float rounding."""
        return math.floor((self.stop - self.start) / self.step * (1 + _COUNT_TOLERANCE) + _COUNT_TOLERANCE) + 1

    def values(self) -> List[float]:
        return [self.start + k * self.step for k in range(self.point_count)]


AnalysisConfig = Union[OpAnalysis, TranAnalysis, DcSweepAnalysis]


def parse_analysis_config(raw: Mapping[str, Any]) -> AnalysisConfig:
    """
    Parses a raw analysis mapping (as found in `ParsedNetlist.analyses`) into a
    typed configuration. Times and levels may be pint strings such as
    "0.1 ns" or "1.8 V".

    Raises:
        ConfigParsingError: Unknown type, missing field or invalid value.
    """
    if not raw:
        raise ConfigParsingError("Analysis configuration is missing or empty.")
    try:
        analysis_type = str(raw['type']).lower()
        probes = raw.get('probes')

        if analysis_type == 'op':
            return OpAnalysis(probes=_probes(probes))

        if analysis_type == 'tran':
            return TranAnalysis(
                step=to_si_magnitude(raw['step'], 'second'),
                stop=to_si_magnitude(raw['stop'], 'second'),
                start=to_si_magnitude(raw.get('start', 0.0), 'second'),
                probes=_probes(probes),
            )

        if analysis_type == 'dc':
            # The swept quantity is a voltage or a current; accept either, but
            # all three values must agree.
            values = [raw['start'], raw['stop'], raw['step']]
            unit = _sweep_unit(values)
            start, stop, step = (to_si_magnitude(v, unit) for v in values)
            return DcSweepAnalysis(source=str(raw['source']), start=start, stop=stop, step=step, probes=_probes(probes))

        raise ConfigParsingError(f"Unknown analysis type '{raw['type']}'. Expected one of: op, tran, dc.")
    except ConfigParsingError:
        raise
    except KeyError as e:
        raise ConfigParsingError(f"Analysis configuration is missing required field {e}.") from e
    except (ValueError, TypeError, pint.PintError) as e:
        raise ConfigParsingError(f"Failed to parse analysis configuration: {e}") from e


def _sweep_unit(values: List[Any]) -> str:
    """'volt' unless any value carries current units."""
    for unit in ('volt', 'ampere'):
        try:
            for value in values:
                to_si_magnitude(value, unit)
            return unit
        except pint.DimensionalityError:
            continue
    raise ConfigParsingError(f"DC sweep values {values!r} must all be voltages or all be currents.")
