# src/spicecore/simulation/context.py
"""
Defines the `SimulationContext` handed to every device stamp.
"""
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

from ..constants import GMIN_SIEMENS


@dataclass(frozen=True)
class SimulationContext:
    """
    Immutable description of the point being solved.

    Attributes:
        time: Simulated time in seconds, or None for a DC solve. Sources use
              their DC value when it is None.
        step: Current transient step length in seconds, None outside transient.
        source_overrides: Lower-cased source name to forced value, used by DC
                          sweeps.
        gmin: Conductance stamped in parallel with every junction.
    """
    time: Optional[float] = None
    step: Optional[float] = None
    source_overrides: Mapping[str, float] = field(default_factory=dict)
    gmin: float = GMIN_SIEMENS

    def __post_init__(self):
        folded = {name.lower(): float(value) for name, value in self.source_overrides.items()}
        object.__setattr__(self, 'source_overrides', MappingProxyType(folded))

    def override_for(self, device_name: str) -> Optional[float]:
        return self.source_overrides.get(device_name.lower())

    def at_time(self, time: float, step: Optional[float] = None) -> "SimulationContext":
        return replace(self, time=time, step=step)

    def with_override(self, device_name: str, value: float) -> "SimulationContext":
        return replace(self, source_overrides={**self.source_overrides, device_name: value})
