# src/spicecore/components/sources.py
"""
Independent voltage and current sources.

A source's value in a given solve comes from, in order of precedence: a DC
sweep override naming the source, its transient waveform evaluated at
`context.time`, or its DC value.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from .base import DeviceBase, register_component
from .capabilities import (
    IConnectivityProvider, IIndependentSource, IStampContributor, provides
)


logger = logging.getLogger(__name__)


class IndependentSourceBase(DeviceBase):
    """Shared value resolution for independent sources. Not registered itself."""
    accepts_waveform = True
    level_unit: str = "volt"

    @provides(IIndependentSource)
    class IndependentSource:
        def dc_value(self, device: 'IndependentSourceBase') -> float:
            return device.parameters['dc']

        def value_at(self, device: 'IndependentSourceBase', context) -> float:
            override = context.override_for(device.instance_id)
            if override is not None:
                return override
            if context.time is not None and device.waveform is not None:
                return device.waveform.value_at(context.time)
            return device.parameters['dc']

    def value_in(self, context) -> float:
        return self.get_capability(IIndependentSource).value_at(self, context)

    @classmethod
    def parameter_defaults(cls, model_type: Optional[str] = None) -> Dict[str, float]:
        return {"dc": 0.0}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p', 'n']


@register_component("VoltageSource")
class VoltageSource(IndependentSourceBase):
    """
    Ideal voltage source. Adds the constraint row V(p) - V(n) = value on its
    branch unknown; the branch current flows from p through the source to n.
    """
    level_unit = "volt"

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'VoltageSource', system, unknowns: np.ndarray, context) -> None:
            p, n, br = device.index_of('p'), device.index_of('n'), device.branch_index
            system.add(br, p, 1.0)
            system.add(br, n, -1.0)
            system.add(p, br, 1.0)
            system.add(n, br, -1.0)
            system.add_rhs(br, device.value_in(context))

    @classmethod
    def declare_branches(cls) -> int: return 1

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"dc": "volt"}


@register_component("CurrentSource")
class CurrentSource(IndependentSourceBase):
    """Ideal current source; the current flows from p through the source to n."""
    level_unit = "ampere"

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'CurrentSource', system, unknowns: np.ndarray, context) -> None:
            system.add_current(device.index_of('p'), device.index_of('n'), device.value_in(context))

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_connectivity(self, device: 'CurrentSource') -> List[Tuple[str, str]]:
            return []

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"dc": "ampere"}
