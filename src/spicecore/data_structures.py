# src/spicecore/data_structures.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple, TYPE_CHECKING

from .constants import GROUND_INDEX, GROUND_NODE_NAMES

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .components.base import DeviceBase
    from .netlist.raw_data import ParsedNetlist


def is_ground_name(name: str) -> bool:
    """'0' and 'gnd' (any case) denote the reference node."""
    return name.lower() in GROUND_NODE_NAMES


@dataclass(frozen=True)
class Node:
    """
    An electrical node of the synthesized circuit. The reference node has
    index -1; every other node owns one voltage unknown.
    """
    name: str
    index: int
    is_ground: bool = False


@dataclass(frozen=True)
class Circuit:
    """
    The simulation-ready circuit, produced by the CircuitBuilder.

    Unknown layout: indices [0, node_count) are node voltages in order of first
    appearance, followed by one branch current per voltage-defining device in
    device order. The object is never mutated by an analysis.
    """
    name: str
    nodes: Mapping[str, Node]
    devices: Tuple[DeviceBase, ...]
    branch_count: int = 0
    raw_ir_root: Optional[ParsedNetlist] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'nodes', MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, 'devices', tuple(self.devices))

    @property
    def node_count(self) -> int:
        """Number of non-ground nodes, i.e. voltage unknowns."""
        return sum(1 for node in self.nodes.values() if not node.is_ground)

    @property
    def unknown_count(self) -> int:
        return self.node_count + self.branch_count

    @property
    def is_nonlinear(self) -> bool:
        return any(device.is_nonlinear for device in self.devices)

    @property
    def has_ground(self) -> bool:
        return any(node.is_ground for node in self.nodes.values())

    def node_index(self, name: str) -> int:
        """
        Unknown index of a node; -1 for any ground alias.

        Raises:
            KeyError: If the circuit has no node of that name.
        """
        if is_ground_name(name):
            return GROUND_INDEX
        return self.nodes[name].index

    def find_device(self, name: str) -> Optional[DeviceBase]:
        """Case-insensitive device lookup."""
        wanted = name.lower()
        for device in self.devices:
            if device.instance_id.lower() == wanted:
                return device
        return None

    @property
    def unknown_labels(self) -> List[str]:
        """`V(node)` for each voltage unknown and `I(device)` for each branch current, in index order."""
        labels = [""] * self.unknown_count
        for node in self.nodes.values():
            if not node.is_ground:
                labels[node.index] = f"V({node.name})"
        for device in self.devices:
            if device.branch_index is not None:
                labels[device.branch_index] = f"I({device.instance_id})"
        return labels
