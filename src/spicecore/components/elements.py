# src/spicecore/components/elements.py
"""
This module provides the concrete implementations for the passive elements:
Resistor, Capacitor, and Inductor.
"""

import logging
import math
from typing import Dict, List, Mapping, Tuple

import numpy as np

from ..constants import LARGE_CONDUCTANCE_SIEMENS

from .base import DeviceBase, register_component
from .capabilities import (
    ICompanionModel, IConnectivityProvider, IStampContributor, provides
)
from .exceptions import ComponentError


logger = logging.getLogger(__name__)


def _require_non_negative(instance_id: str, name: str, value: float, allow_infinite: bool) -> None:
    """Shared physical checks for passive element values."""
    if math.isnan(value):
        raise ComponentError(component_name=instance_id, details=f"Parameter '{name}' is NaN.")
    if value < 0:
        raise ComponentError(
            component_name=instance_id,
            details=f"Parameter '{name}' must be non-negative, got {value:g}."
        )
    if not allow_infinite and math.isinf(value):
        raise ComponentError(
            component_name=instance_id,
            details=f"Parameter '{name}' must be finite."
        )


@register_component("Resistor")
class Resistor(DeviceBase):
    """An ideal resistor. R=0 is stamped as a large conductance, R=inf as an open."""

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'Resistor', system, unknowns: np.ndarray, context) -> None:
            system.add_conductance(device.index_of('p1'), device.index_of('p2'), device.conductance)

    @property
    def conductance(self) -> float:
        r = self.parameters['resistance']
        if r == 0.0:
            return LARGE_CONDUCTANCE_SIEMENS
        if math.isinf(r):
            return 0.0
        return 1.0 / r

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        _require_non_negative(instance_id, 'resistance', values['resistance'], allow_infinite=True)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"resistance": "ohm"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p1', 'p2']


@register_component("Capacitor")
class Capacitor(DeviceBase):
    """An ideal capacitor: open at DC, backward-Euler companion in transient."""

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'Capacitor', system, unknowns: np.ndarray, context) -> None:
            # Open circuit at the operating point.
            return None

    @provides(ICompanionModel)
    class CompanionModel:
        def state_from(self, device: 'Capacitor', unknowns: np.ndarray) -> float:
            return device.voltage(unknowns, 'p1') - device.voltage(unknowns, 'p2')

        def stamp_companion(self, device: 'Capacitor', system, previous_state: float, step: float) -> None:
            a, b = device.index_of('p1'), device.index_of('p2')
            geq = device.parameters['capacitance'] / step
            system.add_conductance(a, b, geq)
            # Equivalent source geq*v_prev drives current into node a.
            system.add_current(a, b, -geq * previous_state)

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_connectivity(self, device: 'Capacitor') -> List[Tuple[str, str]]:
            return []

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        _require_non_negative(instance_id, 'capacitance', values['capacitance'], allow_infinite=False)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"capacitance": "farad"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p1', 'p2']


@register_component("Inductor")
class Inductor(DeviceBase):
    """
    An ideal inductor. It owns a branch-current unknown; at DC its branch row
    enforces V(p1) - V(p2) = 0 (a short), and in transient the companion adds
    -(L/h)*i to that row.
    """

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'Inductor', system, unknowns: np.ndarray, context) -> None:
            a, b, br = device.index_of('p1'), device.index_of('p2'), device.branch_index
            system.add(br, a, 1.0)
            system.add(br, b, -1.0)
            system.add(a, br, 1.0)
            system.add(b, br, -1.0)

    @provides(ICompanionModel)
    class CompanionModel:
        def state_from(self, device: 'Inductor', unknowns: np.ndarray) -> float:
            return float(unknowns[device.branch_index])

        def stamp_companion(self, device: 'Inductor', system, previous_state: float, step: float) -> None:
            br = device.branch_index
            leq = device.parameters['inductance'] / step
            system.add(br, br, -leq)
            system.add_rhs(br, -leq * previous_state)

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        _require_non_negative(instance_id, 'inductance', values['inductance'], allow_infinite=False)

    @classmethod
    def declare_branches(cls) -> int: return 1

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"inductance": "henry"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p1', 'p2']
