# src/spicecore/circuit_builder.py

"""
Defines the CircuitBuilder, which turns a `ParsedNetlist` (raw IR) into a
simulation-ready `Circuit`.

Responsibilities:

1.  **Device Resolution:** Looking up each device type in the registry,
    checking its port connections and resolving its model card.

2.  **Parameter Resolution:** Merging model defaults, model-card values and
    instance values (in that order of precedence), converting each to an SI
    float with pint, and letting the device class check physical validity.

3.  **Unknown Layout:** Indexing nodes by first appearance (ground aliases map
    to -1) and allocating branch-current unknowns after the nodes, in device
    order.

4.  **Top-Level Error Handling:** Every problem found here is raised as a single
    `CircuitBuildError` whose message is an actionable diagnostic report, so
    malformed input is rejected before any solve starts.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

import pint

from .data_structures import Circuit, Node, is_ground_name
from .constants import GROUND_INDEX
from .components.base import COMPONENT_REGISTRY, DeviceBase, lookup_component_type
from .components.exceptions import ComponentError
from .components.waveforms import waveform_from_mapping
from .netlist.raw_data import ParsedDevice, ParsedNetlist
from .units import to_si_magnitude
from .errors import CircuitBuildError, DiagnosableError, format_diagnostic_report


logger = logging.getLogger(__name__)

_CONVERSION_ERRORS = (ValueError, TypeError, pint.PintError)


@dataclass(frozen=True)
class _ResolvedDevice:
    """Per-device result of the validation pass."""
    cls: Type[DeviceBase]
    ir: ParsedDevice
    ports: Dict[str, str]
    parameters: Dict[str, float]
    model_type: Optional[str]
    waveform: Any


class CircuitBuilder:
    """Synthesizes a simulation-ready `Circuit` from a `ParsedNetlist`."""

    def build(self, netlist: ParsedNetlist) -> Circuit:
        """
        The build-time entry point.

        Raises:
            CircuitBuildError: For any malformed input; the message is a
                formatted diagnostic report.
        """
        logger.info(f"--- Starting circuit synthesis for '{netlist.title}' ---")
        try:
            resolved = self._resolve_devices(netlist)
            circuit = self._synthesize(netlist, resolved)
            logger.info(
                f"--- Circuit synthesis for '{circuit.name}' successful: {circuit.node_count} node(s), "
                f"{circuit.branch_count} branch(es), {len(circuit.devices)} device(s). ---"
            )
            return circuit

        except DiagnosableError as e:
            raise CircuitBuildError(e.get_diagnostic_report()) from e

        except Exception as e:
            report = format_diagnostic_report(
                error_type=f"An Unexpected Error Occurred ({type(e).__name__})",
                details=f"The circuit builder encountered an unexpected internal error: {str(e)}",
                suggestion="This may indicate a bug in SPICE Core. Please review the traceback.",
                context={'source_file': netlist.source_path}
            )
            raise CircuitBuildError(report) from e

    # --- Pass 1: validation and value resolution ---

    def _resolve_devices(self, netlist: ParsedNetlist) -> List[_ResolvedDevice]:
        seen_names: Dict[str, str] = {}
        resolved: List[_ResolvedDevice] = []
        for ir in netlist.devices:
            folded = ir.name.lower()
            if folded in seen_names:
                raise ComponentError(
                    component_name=ir.name,
                    details=f"Device name '{ir.name}' is already used by '{seen_names[folded]}' (names are case-insensitive)."
                )
            seen_names[folded] = ir.name
            resolved.append(self._resolve_device(netlist, ir))
        return resolved

    def _resolve_device(self, netlist: ParsedNetlist, ir: ParsedDevice) -> _ResolvedDevice:
        cls = lookup_component_type(ir.device_type)
        if cls is None:
            raise ComponentError(
                component_name=ir.name,
                details=f"Unknown device type '{ir.device_type}'. Available types: {sorted(COMPONENT_REGISTRY)}."
            )

        ports = self._resolve_ports(cls, ir)
        model_type, model_params = self._resolve_model(cls, netlist, ir)
        parameters = self._resolve_parameters(cls, ir, model_type, model_params)
        cls.validate_parameters(ir.name, parameters)

        waveform = None
        if ir.transient is not None:
            if not cls.accepts_waveform:
                raise ComponentError(
                    component_name=ir.name,
                    details=f"Device type '{cls.component_type_str}' does not accept a transient waveform."
                )
            try:
                waveform = waveform_from_mapping(ir.transient, cls.level_unit)
            except _CONVERSION_ERRORS as e:
                raise ComponentError(component_name=ir.name, details=f"Invalid transient waveform: {e}") from e

        return _ResolvedDevice(cls=cls, ir=ir, ports=ports, parameters=parameters,
                               model_type=model_type, waveform=waveform)

    def _resolve_ports(self, cls: Type[DeviceBase], ir: ParsedDevice) -> Dict[str, str]:
        required = cls.declare_ports()
        allowed = set(required) | set(cls.declare_optional_ports())
        ports: Dict[str, str] = {}
        for port, node in ir.ports.items():
            key = str(port).lower()
            if key not in allowed:
                raise ComponentError(
                    component_name=ir.name,
                    details=f"Unknown port '{port}' for {cls.component_type_str}. Valid ports: {required + cls.declare_optional_ports()}."
                )
            node_name = "" if node is None else str(node).strip()
            if not node_name:
                raise ComponentError(component_name=ir.name, details=f"Port '{port}' is connected to an empty node name.")
            ports[key] = node_name

        missing = [p for p in required if p not in ports]
        if missing:
            raise ComponentError(
                component_name=ir.name,
                details=f"Missing connection for port(s) {missing} of {cls.component_type_str}."
            )
        return ports

    def _resolve_model(
        self, cls: Type[DeviceBase], netlist: ParsedNetlist, ir: ParsedDevice
    ) -> Tuple[Optional[str], Dict[str, Any]]:
        if not cls.model_types:
            if ir.model:
                logger.warning(f"Device '{ir.name}' ({cls.component_type_str}) takes no model card; ignoring model '{ir.model}'.")
            return None, {}

        card = netlist.find_model(ir.model) if ir.model else None
        if card is None:
            model_type = cls.infer_model_type(ir.model)
            if ir.model:
                logger.warning(
                    f"Model '{ir.model}' referenced by '{ir.name}' is not defined; "
                    f"using default '{model_type}' model parameters."
                )
            return model_type, {}

        model_type = card.model_type.lower()
        if model_type not in cls.model_types:
            raise ComponentError(
                component_name=ir.name,
                details=f"Model '{card.name}' has type '{card.model_type}', but {cls.component_type_str} "
                        f"requires one of {list(cls.model_types)}."
            )
        declared = cls.declare_parameters()
        model_params: Dict[str, Any] = {}
        for key, value in card.parameters.items():
            if key.lower() in declared:
                model_params[key.lower()] = value
            else:
                logger.debug(f"Model '{card.name}': parameter '{key}' is not used by {cls.component_type_str}.")
        return model_type, model_params

    def _resolve_parameters(
        self,
        cls: Type[DeviceBase],
        ir: ParsedDevice,
        model_type: Optional[str],
        model_params: Dict[str, Any],
    ) -> Dict[str, float]:
        declared = cls.declare_parameters()
        instance_params = {str(k).lower(): v for k, v in ir.parameters.items()}
        unknown = sorted(set(instance_params) - set(declared))
        if unknown:
            raise ComponentError(
                component_name=ir.name,
                details=f"Unknown parameter(s) {unknown} for {cls.component_type_str}. Declared parameters: {sorted(declared)}."
            )

        values: Dict[str, float] = dict(cls.parameter_defaults(model_type))
        for name, raw in {**model_params, **instance_params}.items():
            unit = declared[name]
            try:
                values[name] = to_si_magnitude(raw, unit)
            except _CONVERSION_ERRORS as e:
                raise ComponentError(
                    component_name=ir.name,
                    details=f"Parameter '{name}' = {raw!r} is not a valid value in '{unit}': {e}"
                ) from e

        missing = sorted(set(declared) - set(values))
        if missing:
            raise ComponentError(
                component_name=ir.name,
                details=f"Missing required parameter(s) {missing} for {cls.component_type_str}."
            )
        return values

    # --- Pass 2: unknown layout and instantiation ---

    def _synthesize(self, netlist: ParsedNetlist, resolved: List[_ResolvedDevice]) -> Circuit:
        nodes: Dict[str, Node] = {}
        next_index = 0
        for item in resolved:
            for node_name in item.ports.values():
                if node_name in nodes:
                    continue
                if is_ground_name(node_name):
                    nodes[node_name] = Node(name=node_name, index=GROUND_INDEX, is_ground=True)
                else:
                    nodes[node_name] = Node(name=node_name, index=next_index)
                    next_index += 1

        unused = [n for n in netlist.node_names if n not in nodes and not is_ground_name(n)]
        if unused:
            logger.warning(f"Ignoring node(s) not connected to any device: {unused}")

        branch_index = next_index
        devices: List[DeviceBase] = []
        for item in resolved:
            branch: Optional[int] = None
            if item.cls.declare_branches() > 0:
                branch = branch_index
                branch_index += item.cls.declare_branches()
            device = item.cls(
                instance_id=item.ir.name,
                component_type_str=item.cls.component_type_str,
                port_net_map=item.ports,
                port_indices={port: nodes[name].index for port, name in item.ports.items()},
                parameters=item.parameters,
                branch_index=branch,
                model_type=item.model_type,
                waveform=item.waveform,
            )
            devices.append(device)

        return Circuit(
            name=netlist.title,
            nodes=nodes,
            devices=tuple(devices),
            branch_count=branch_index - next_index,
            raw_ir_root=netlist,
        )
