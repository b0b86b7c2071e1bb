# src/spicecore/components/semiconductors.py
"""
Nonlinear devices: the junction diode and the Level-1 (Shichman-Hodges) MOSFET.

Both stamp their Newton companion at the current iterate: the small-signal
conductances plus an equivalent current source I(V0) - g*V0. GMIN is stamped
across the diode junction and the MOSFET channel so that a device in cutoff
never leaves its nodes without a conductive path.
"""

import logging
import math
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Mapping, Optional, Tuple

import numpy as np

from ..constants import DIODE_MAX_EXPONENT, THERMAL_VOLTAGE_V
from .base import DeviceBase, register_component
from .capabilities import IConnectivityProvider, IStampContributor, provides
from .exceptions import ComponentError


logger = logging.getLogger(__name__)


def _require_positive(instance_id: str, values: Mapping[str, float], names: Tuple[str, ...]) -> None:
    for name in names:
        value = values[name]
        if not (value > 0 and math.isfinite(value)):
            raise ComponentError(
                component_name=instance_id,
                details=f"Parameter '{name}' must be positive and finite, got {value:g}."
            )


# --- Diode ---

def diode_current(v: float, saturation_current: float, emission_coefficient: float) -> Tuple[float, float]:
    """
    Shockley diode current and its derivative at junction voltage `v`.

    Above the critical voltage (DIODE_MAX_EXPONENT thermal voltages) the
    exponential is continued linearly with the slope it has at that point.

    Returns:
        (current, conductance) in amperes and siemens.
    """
    nvt = emission_coefficient * THERMAL_VOLTAGE_V
    v_crit = DIODE_MAX_EXPONENT * nvt
    if v <= v_crit:
        e = math.exp(v / nvt)
        return saturation_current * (e - 1.0), saturation_current * e / nvt
    e = math.exp(DIODE_MAX_EXPONENT)
    g = saturation_current * e / nvt
    return saturation_current * (e - 1.0) + g * (v - v_crit), g


@register_component("Diode")
class Diode(DeviceBase):
    """Junction diode, I = Is*(exp(V/(n*Vt)) - 1), current flowing anode to cathode."""
    is_nonlinear = True
    model_types = ("d",)
    limited_ports = ("anode", "cathode")

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'Diode', system, unknowns: np.ndarray, context) -> None:
            a, k = device.index_of('anode'), device.index_of('cathode')
            v = device.voltage(unknowns, 'anode') - device.voltage(unknowns, 'cathode')
            i, g = device.current(v)
            system.add_conductance(a, k, g + context.gmin)
            system.add_current(a, k, i - g * v)

    def current(self, v: float) -> Tuple[float, float]:
        """(current, conductance) at junction voltage `v`, without GMIN."""
        return diode_current(v, self.parameters['is'], self.parameters['n'])

    @classmethod
    def parameter_defaults(cls, model_type: Optional[str] = None) -> Dict[str, float]:
        return {"is": 1.0e-14, "n": 1.0}

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        _require_positive(instance_id, values, ("is", "n"))

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {"is": "ampere", "n": "dimensionless"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['anode', 'cathode']


# --- MOSFET ---

@dataclass(frozen=True)
class MosfetOperatingPoint:
    """Drain current (drain to source) and its derivatives at one bias point."""
    ids: float
    gm: float
    gds: float
    region: str


def level1_forward(vgs: float, vds: float, vth: float, beta: float, lam: float) -> Tuple[float, float, float, str]:
    """
    Shichman-Hodges equations for an n-type device with vds >= 0.

    Returns:
        (ids, gm, gds, region) with region one of 'cutoff', 'linear', 'saturation'.
    """
    if vgs <= vth:
        return 0.0, 0.0, 0.0, "cutoff"
    vov = vgs - vth
    clm = 1.0 + lam * vds
    if vds < vov:
        core = vov * vds - 0.5 * vds * vds
        ids = beta * core * clm
        gm = beta * vds * clm
        gds = beta * (vov - vds) * clm + beta * core * lam
        return ids, gm, gds, "linear"
    ids = 0.5 * beta * vov * vov * clm
    gm = beta * vov * clm
    gds = 0.5 * beta * vov * vov * lam
    return ids, gm, gds, "saturation"


@register_component("Mosfet")
class Mosfet(DeviceBase):
    """
    Level-1 MOSFET. PMOS devices are evaluated in the n-type frame by flipping
    terminal voltages; when Vds is negative in that frame, drain and source
    swap roles. The bulk terminal is accepted but body effect is not modelled.
    """
    is_nonlinear = True
    model_types = ("nmos", "pmos")
    limited_ports = ("g", "s")

    _DEFAULTS: ClassVar[Dict[str, Dict[str, float]]] = {
        "nmos": {"vth0": 0.4, "kp": 120e-6, "lambda": 0.04, "w": 1e-6, "l": 0.13e-6},
        "pmos": {"vth0": -0.4, "kp": 60e-6, "lambda": 0.04, "w": 1e-6, "l": 0.13e-6},
    }

    @provides(IStampContributor)
    class StampContributor:
        def stamp(self, device: 'Mosfet', system, unknowns: np.ndarray, context) -> None:
            d, g, s = device.index_of('d'), device.index_of('g'), device.index_of('s')
            vgs = device.voltage(unknowns, 'g') - device.voltage(unknowns, 's')
            vds = device.voltage(unknowns, 'd') - device.voltage(unknowns, 's')
            op = device.evaluate(vgs, vds)
            system.add_conductance(d, s, op.gds + context.gmin)
            system.add_transconductance(d, s, g, s, op.gm)
            system.add_current(d, s, op.ids - op.gm * vgs - op.gds * vds)

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_connectivity(self, device: 'Mosfet') -> List[Tuple[str, str]]:
            return [('d', 's')]

    @property
    def is_pmos(self) -> bool:
        return self.model_type == "pmos"

    def evaluate(self, vgs: float, vds: float) -> MosfetOperatingPoint:
        """Drain current and small-signal conductances at the given terminal voltages."""
        p = self.parameters
        sign = -1.0 if self.is_pmos else 1.0
        vth = abs(p['vth0'])
        beta = p['kp'] * p['w'] / p['l']
        vgs_n, vds_n = sign * vgs, sign * vds

        if vds_n >= 0.0:
            ids_n, gm_n, gds_n, region = level1_forward(vgs_n, vds_n, vth, beta, p['lambda'])
        else:
            # Reverse mode: the source terminal acts as the drain.
            ids_r, gm_r, gds_r, region = level1_forward(vgs_n - vds_n, -vds_n, vth, beta, p['lambda'])
            ids_n, gm_n, gds_n = -ids_r, -gm_r, gm_r + gds_r

        # Derivatives are invariant under the polarity flip; the current is not.
        return MosfetOperatingPoint(ids=sign * ids_n, gm=gm_n, gds=gds_n, region=region)

    @classmethod
    def infer_model_type(cls, model_name: Optional[str]) -> str:
        """Polarity guess for a model name with no matching model card."""
        name = (model_name or "").lower()
        return "pmos" if ("pmos" in name or "pfet" in name) else "nmos"

    @classmethod
    def parameter_defaults(cls, model_type: Optional[str] = None) -> Dict[str, float]:
        return dict(cls._DEFAULTS.get(model_type or "nmos", cls._DEFAULTS["nmos"]))

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        _require_positive(instance_id, values, ("kp", "w", "l"))
        if values['lambda'] < 0:
            raise ComponentError(component_name=instance_id, details="Parameter 'lambda' must be non-negative.")

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {"vth0": "volt", "kp": "ampere / volt ** 2", "lambda": "1 / volt", "w": "meter", "l": "meter"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['d', 'g', 's']

    @classmethod
    def declare_optional_ports(cls) -> List[str]: return ['b']
