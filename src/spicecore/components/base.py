# src/spicecore/components/base.py

import logging
import inspect
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

import numpy as np

from ..constants import GROUND_INDEX
from .capabilities import (
    DeviceCapability, TCapability, IConnectivityProvider, provides
)


logger = logging.getLogger(__name__)


class DeviceBase(ABC):
    """
    The abstract base class for all circuit devices in SPICE Core.

    A device instance is a fully resolved, immutable description: its port to
    node mapping, the unknown index of every port, SI parameter values and,
    for voltage-defining devices, the index of its branch-current unknown.
    Behaviour is exposed through queryable capabilities rather than through
    abstract methods, so the simulation code stays agnostic of device types.
    """
    component_type_str: ClassVar[str] = "BaseDevice"
    is_nonlinear: ClassVar[bool] = False
    #: Model card types ('d', 'nmos', ...) this device may reference.
    model_types: ClassVar[Tuple[str, ...]] = ()
    #: Whether a transient waveform may be attached.
    accepts_waveform: ClassVar[bool] = False
    #: Ports whose node-voltage updates Newton limits to max_voltage_step.
    limited_ports: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        instance_id: str,
        component_type_str: str,
        port_net_map: Dict[str, str],
        port_indices: Dict[str, int],
        parameters: Dict[str, float],
        branch_index: Optional[int] = None,
        model_type: Optional[str] = None,
        waveform: Optional[Any] = None,
    ):
        """
        Initializes the resolved attributes of a device instance. Called by the
        CircuitBuilder only.

        Args:
            instance_id: The unique name of this device (e.g., 'R1').
            component_type_str: The registered type identifier (e.g., 'Resistor').
            port_net_map: Canonical port name (e.g., 'p1') to node name.
            port_indices: Canonical port name to unknown index (-1 for ground).
            parameters: Parameter name to SI float value, defaults applied.
            branch_index: Index of the branch-current unknown, if any.
            model_type: Type of the resolved model card ('nmos', 'pmos', 'd').
            waveform: Transient waveform for independent sources.
        """
        self.instance_id: str = instance_id
        self.component_type: str = component_type_str
        self._port_net_map = MappingProxyType(dict(port_net_map))
        self._port_indices = MappingProxyType(dict(port_indices))
        self._parameters = MappingProxyType(dict(parameters))
        self.branch_index: Optional[int] = branch_index
        self.model_type: Optional[str] = model_type
        self.waveform = waveform

        self._capability_cache: Dict[Type[DeviceCapability], DeviceCapability] = {}
        logger.debug(f"Initialized {type(self).__name__} '{self.instance_id}'")

    @property
    def parameters(self) -> Mapping[str, float]:
        """Read-only view of the resolved SI parameter values."""
        return self._parameters

    @property
    def port_indices(self) -> Mapping[str, int]:
        return self._port_indices

    def get_port_net_mapping(self) -> Mapping[str, str]:
        """Canonical port name to node name, as connected in the netlist."""
        return self._port_net_map

    def index_of(self, port: str) -> int:
        """Unknown index of the node on `port`; -1 for ground or an unconnected optional port."""
        return self._port_indices.get(port, GROUND_INDEX)

    def voltage(self, unknowns: np.ndarray, port: str) -> float:
        """Voltage of the node on `port` in the given solution vector."""
        idx = self.index_of(port)
        return 0.0 if idx < 0 else float(unknowns[idx])

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        """
        Default IConnectivityProvider: a 2-port device conducts between its
        ports. Devices with more ports, or without a DC path, must override.
        """
        def get_connectivity(self, device: "DeviceBase") -> List[Tuple[str, str]]:
            ports = type(device).declare_ports()
            if len(ports) == 2:
                return [(ports[0], ports[1])]
            if len(ports) > 2:
                logger.error(
                    f"Device type '{type(device).component_type_str}' has > 2 ports but uses the default "
                    f"IConnectivityProvider, which assumes no internal connections."
                )
            return []

    @classmethod
    def declare_capabilities(cls) -> Dict[Type[DeviceCapability], Type]:
        """
        Discovers the capabilities map by inspecting the class hierarchy (MRO)
        for nested classes decorated with `@provides`. The most derived
        implementation of a capability wins.
        """
        discovered_capabilities = {}
        for base_class in cls.__mro__:
            for _, member_obj in inspect.getmembers(base_class):
                if hasattr(member_obj, '_implements_capability'):
                    protocol = member_obj._implements_capability
                    if protocol not in discovered_capabilities:
                        discovered_capabilities[protocol] = member_obj
        return discovered_capabilities

    def get_capability(self, capability_type: Type[TCapability]) -> Optional[TCapability]:
        """
        Queries the device instance for a specific capability.

        Returns:
            An instance of the capability implementation if supported, otherwise `None`.
        """
        if capability_type in self._capability_cache:
            return self._capability_cache[capability_type]

        declared = type(self).declare_capabilities()
        impl_class = declared.get(capability_type)

        if impl_class:
            instance = impl_class()
            self._capability_cache[capability_type] = instance
            return instance

        return None

    @classmethod
    @abstractmethod
    def declare_parameters(cls) -> Dict[str, str]:
        """Declare parameter names and their expected physical units as pint strings."""
        pass

    @classmethod
    @abstractmethod
    def declare_ports(cls) -> List[str]:
        """Declare the canonical names of the device's required ports."""
        pass

    @classmethod
    def declare_optional_ports(cls) -> List[str]:
        """Ports that may be left unconnected (e.g. a MOSFET bulk terminal)."""
        return []

    @classmethod
    def declare_branches(cls) -> int:
        """Number of branch-current unknowns the device adds (1 for voltage-defining devices)."""
        return 0

    @classmethod
    def parameter_defaults(cls, model_type: Optional[str] = None) -> Dict[str, float]:
        """
        SI default values for optional parameters. A declared parameter with
        no default is required.
        """
        return {}

    @classmethod
    def infer_model_type(cls, model_name: Optional[str]) -> Optional[str]:
        """Model type to assume when no model card matches `model_name`."""
        return cls.model_types[0] if cls.model_types else None

    @classmethod
    def validate_parameters(cls, instance_id: str, values: Mapping[str, float]) -> None:
        """Raise ComponentError if the resolved values are physically invalid."""
        return None

    def __str__(self) -> str:
        return f"{type(self).__name__}('{self.instance_id}')"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(instance_id='{self.instance_id}')"


# --- Global Device Registry and Decorator ---

COMPONENT_REGISTRY: Dict[str, Type[DeviceBase]] = {}


def lookup_component_type(type_str: str) -> Optional[Type[DeviceBase]]:
    """Case-insensitive lookup in the device registry."""
    if type_str in COMPONENT_REGISTRY:
        return COMPONENT_REGISTRY[type_str]
    folded = type_str.lower()
    for name, cls in COMPONENT_REGISTRY.items():
        if name.lower() == folded:
            return cls
    return None


def register_component(type_str: str):
    """
    A class decorator to register a device class in the global registry,
    making it available to the CircuitBuilder.
    """
    def decorator(cls: Type[DeviceBase]):
        if not issubclass(cls, DeviceBase):
            raise TypeError(f"Class {cls.__name__} must inherit from DeviceBase.")

        try:
            ports = cls.declare_ports() + cls.declare_optional_ports()
            if not isinstance(ports, list) or not all(isinstance(p, str) and p for p in ports):
                raise TypeError(
                    f"Device class '{cls.__name__}' violates API contract. "
                    f"declare_ports() must return a list of non-empty strings, but returned: {ports}."
                )
            if len(set(ports)) != len(ports):
                raise TypeError(
                    f"Device class '{cls.__name__}' violates API contract. "
                    f"Port names must be unique, but found duplicates in: {ports}."
                )
        except Exception as e:
            raise TypeError(
                f"A failure occurred while attempting to validate the API contract of "
                f"device class '{cls.__name__}'. Error during call to declare_ports(): {e}"
            ) from e

        try:
            params = cls.declare_parameters()
            if not isinstance(params, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in params.items()):
                raise TypeError(
                    f"Device class '{cls.__name__}' violates API contract. "
                    f"declare_parameters() must return a Dict[str, str], but returned a value of type '{type(params).__name__}'."
                )
        except Exception as e:
            raise TypeError(
                f"A failure occurred while attempting to validate the API contract of "
                f"device class '{cls.__name__}'. Error during call to declare_parameters(): {e}"
            ) from e

        if type_str in COMPONENT_REGISTRY:
            logger.warning(f"Device type '{type_str}' is being redefined/overwritten.")
        cls.component_type_str = type_str
        COMPONENT_REGISTRY[type_str] = cls
        logger.info(f"Registered device type '{type_str}' -> {cls.__name__}")
        return cls
    return decorator
