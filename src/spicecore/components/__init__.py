# src/spicecore/components/__init__.py
import logging
logger = logging.getLogger(__name__)

# Import base first to define registry and decorator
from .base import DeviceBase, COMPONENT_REGISTRY, register_component, lookup_component_type
from .capabilities import (
    DeviceCapability, IStampContributor, ICompanionModel, IConnectivityProvider,
    IIndependentSource, provides,
)
from .exceptions import ComponentError
# Import concrete devices to trigger registration
from .elements import Resistor, Capacitor, Inductor
from .sources import VoltageSource, CurrentSource
from .semiconductors import Diode, Mosfet, MosfetOperatingPoint
from .waveforms import (
    PulseWaveform, SinWaveform, PwlWaveform, ExpWaveform, Waveform, waveform_from_mapping,
)

logger.info(f"Available device types: {list(COMPONENT_REGISTRY.keys())}")

__all__ = [
    "DeviceBase",
    "COMPONENT_REGISTRY",
    "register_component",
    "lookup_component_type",
    "DeviceCapability",
    "IStampContributor",
    "ICompanionModel",
    "IConnectivityProvider",
    "IIndependentSource",
    "provides",
    "ComponentError",
    "Resistor",
    "Capacitor",
    "Inductor",
    "VoltageSource",
    "CurrentSource",
    "Diode",
    "Mosfet",
    "MosfetOperatingPoint",
    "PulseWaveform",
    "SinWaveform",
    "PwlWaveform",
    "ExpWaveform",
    "Waveform",
    "waveform_from_mapping",
]
