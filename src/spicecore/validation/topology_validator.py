# src/spicecore/validation/topology_validator.py
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import networkx as nx
from networkx.utils import UnionFind

from ..components.capabilities import IConnectivityProvider
from ..data_structures import Circuit, is_ground_name
from .exceptions import SemanticValidationError
from .issue_codes import TopologyIssueCode
from .issues import ValidationIssue, ValidationIssueLevel

logger = logging.getLogger(__name__)

# All ground aliases collapse onto this graph node.
_GROUND_KEY = "0"


class TopologyValidator:
    """
    Checks the connectivity of a synthesized circuit before it is solved.

    The checks work on node names only and never look at parameter values:
    a node without a DC path to ground, a node touched by a single device
    port, devices without any ground connection, and loops formed solely by
    voltage-defining devices (voltage sources and inductors). The first and
    last leave the MNA matrix singular or ill-conditioned; the solver still
    decides the numerical outcome.
    """

    def __init__(self, circuit: Circuit):
        if not isinstance(circuit, Circuit):
            raise TypeError("TopologyValidator requires a synthesized Circuit object.")
        self.circuit = circuit
        self.issues: List[ValidationIssue] = []

    def validate(self, strict: bool = False) -> List[ValidationIssue]:
        """
        Runs all checks and returns the issues found, as warnings.

        Args:
            strict: Promote every issue to an error and raise if any was found.

        Raises:
            SemanticValidationError: In strict mode, if any issue was found.
        """
        self.issues = []
        if not self.circuit.devices:
            return []

        self._check_ground()
        self._check_dc_paths()
        self._check_single_connections()
        self._check_voltage_loops()

        logger.info(f"Topology validation of '{self.circuit.name}' found {len(self.issues)} issue(s).")
        if strict and self.issues:
            for issue in self.issues:
                issue.level = ValidationIssueLevel.ERROR
            raise SemanticValidationError(self.issues)
        return list(self.issues)

    # --- Helpers ---

    @staticmethod
    def _key(node_name: str) -> str:
        return _GROUND_KEY if is_ground_name(node_name) else node_name

    def _add_issue(self, code: TopologyIssueCode, device_name: Optional[str] = None,
                   node_name: Optional[str] = None, **kwargs) -> None:
        message = code.format_message(device_name=device_name, node_name=node_name, **kwargs)
        logger.warning(f"[{code.code}] {message}")
        self.issues.append(ValidationIssue(
            level=ValidationIssueLevel.WARNING,
            code=code.code,
            message=message,
            device_name=device_name,
            node_name=node_name,
            details={k: v for k, v in kwargs.items() if v is not None},
        ))

    def _non_ground_nodes(self) -> List[str]:
        return [node.name for node in self.circuit.nodes.values() if not node.is_ground]

    def _build_dc_graph(self) -> nx.Graph:
        """Graph of nodes joined by every DC-conducting port pair the devices report."""
        graph = nx.Graph()
        graph.add_node(_GROUND_KEY)
        graph.add_nodes_from(self._non_ground_nodes())
        for device in self.circuit.devices:
            provider = device.get_capability(IConnectivityProvider)
            if provider is None:
                continue
            net_map = device.get_port_net_mapping()
            for port_a, port_b in provider.get_connectivity(device):
                net_a, net_b = net_map.get(port_a), net_map.get(port_b)
                if net_a is None or net_b is None:
                    continue
                graph.add_edge(self._key(net_a), self._key(net_b), device=device.instance_id)
        return graph

    # --- Checks ---

    def _check_ground(self) -> None:
        if not self.circuit.has_ground:
            self._add_issue(TopologyIssueCode.GND_MISSING, device_count=len(self.circuit.devices))

    def _check_dc_paths(self) -> None:
        graph = self._build_dc_graph()
        grounded = nx.node_connected_component(graph, _GROUND_KEY)
        for node_name in self._non_ground_nodes():
            if node_name not in grounded:
                self._add_issue(TopologyIssueCode.NODE_CONN_FLOATING, node_name=node_name)

    def _check_single_connections(self) -> None:
        connections: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
        for device in self.circuit.devices:
            for port, net in device.get_port_net_mapping().items():
                if not is_ground_name(net):
                    connections[net].append((device.instance_id, port))
        for node_name in self._non_ground_nodes():
            attached = connections.get(node_name, [])
            if len(attached) == 1:
                device_name, port_name = attached[0]
                self._add_issue(
                    TopologyIssueCode.NODE_CONN_SINGLE,
                    device_name=device_name, node_name=node_name, port_name=port_name,
                )

    def _check_voltage_loops(self) -> None:
        sets = UnionFind()
        for device in self.circuit.devices:
            if type(device).declare_branches() == 0:
                continue
            ports = type(device).declare_ports()
            net_map = device.get_port_net_mapping()
            node_a, node_b = self._key(net_map[ports[0]]), self._key(net_map[ports[1]])
            if sets[node_a] == sets[node_b]:
                self._add_issue(
                    TopologyIssueCode.VLOOP_001,
                    device_name=device.instance_id, node_a=net_map[ports[0]], node_b=net_map[ports[1]],
                )
            else:
                sets.union(node_a, node_b)
