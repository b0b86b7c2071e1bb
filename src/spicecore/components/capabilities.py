# src/spicecore/components/capabilities.py
"""
Defines the capability architecture for SPICE Core devices.

Analysis code never switches on a device's type. Instead it asks a device
instance for a capability (`device.get_capability(IStampContributor)`) and
uses the returned object, or skips the device when the capability is absent.
Adding a device type therefore never requires touching the solver.

Key elements:
- DeviceCapability: A marker protocol for all capabilities.
- IStampContributor: Contributes the device's (linearised) MNA stamp at the
  current Newton iterate. Every device provides it.
- ICompanionModel: Contributes the backward-Euler replacement of a reactive
  element during a transient step and extracts the state it needs from an
  accepted solution.
- IConnectivityProvider: Reports which port pairs are joined by a DC path,
  used by topology validation.
- IIndependentSource: Exposes the value of an independent source at DC, at a
  simulated time, or under a DC-sweep override.
- @provides: A class decorator registering a nested class as a capability
  implementation.
"""

import logging
from typing import (
    List,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    TYPE_CHECKING,
    runtime_checkable,
)

import numpy as np

if TYPE_CHECKING:
    from .base import DeviceBase
    from ..simulation.context import SimulationContext
    from ..simulation.mna import MnaSystem

logger = logging.getLogger(__name__)


@runtime_checkable
class DeviceCapability(Protocol):
    """A marker protocol for all device capabilities."""

    pass


TCapability = TypeVar("TCapability", bound=DeviceCapability)


@runtime_checkable
class IStampContributor(DeviceCapability, Protocol):
    """
    Contributes a device's entries to the MNA matrix and right-hand side.

    CONTRACT:
    1.  Stamps are additive: implementations call `system.add*` and never read
        or overwrite what other devices contributed.
    2.  Nonlinear devices stamp their Newton companion: the conductance dI/dV
        evaluated at `unknowns`, and the equivalent current I(V0) - g*V0.
    3.  Implementations read only their arguments. `unknowns` must not be
        modified.
    """

    def stamp(
        self,
        device: "DeviceBase",
        system: "MnaSystem",
        unknowns: np.ndarray,
        context: "SimulationContext",
    ) -> None:
        ...


@runtime_checkable
class ICompanionModel(DeviceCapability, Protocol):
    """
    Backward-Euler companion model of a reactive element.

    The state is a single float taken from the last accepted solution: the
    voltage across a capacitor, the branch current of an inductor.
    """

    def state_from(self, device: "DeviceBase", unknowns: np.ndarray) -> float:
        """Extracts this element's state from an accepted solution vector."""
        ...

    def stamp_companion(
        self,
        device: "DeviceBase",
        system: "MnaSystem",
        previous_state: float,
        step: float,
    ) -> None:
        """Adds the companion stamp for a step of length `step` seconds."""
        ...


@runtime_checkable
class IConnectivityProvider(DeviceCapability, Protocol):
    """
    Reports the device's DC-conductive port pairs, e.g. [('p1', 'p2')] for a
    resistor, [] for a capacitor or a current source.
    """

    def get_connectivity(self, device: "DeviceBase") -> List[Tuple[str, str]]:
        ...


@runtime_checkable
class IIndependentSource(DeviceCapability, Protocol):
    """Value access for independent voltage and current sources."""

    def dc_value(self, device: "DeviceBase") -> float:
        ...

    def value_at(self, device: "DeviceBase", context: "SimulationContext") -> float:
        """
        The source value for the given context: a sweep override if one names
        this device, else the transient waveform at `context.time`, else the
        DC value.
        """
        ...


def provides(capability_protocol: Type[DeviceCapability]):
    """
    A class decorator to register a class as an implementation for a capability.

    The decorator attaches `_implements_capability` to the decorated class;
    `DeviceBase.declare_capabilities` discovers it by walking the MRO.
    """

    def decorator(cls: Type) -> Type:
        if not issubclass(capability_protocol, DeviceCapability):
            raise TypeError(
                f"Decorator argument for @provides must be a DeviceCapability "
                f"Protocol, but got {capability_protocol}."
            )
        cls._implements_capability = capability_protocol
        logger.debug(
            f"Class '{cls.__name__}' registered as providing capability '{capability_protocol.__name__}'."
        )
        return cls

    return decorator
