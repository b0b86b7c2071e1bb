# src/spicecore/netlist/raw_data.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

# The classes in this module define the Intermediate Representation (IR) handed
# from whatever front end produced the netlist (a SPICE deck parser, a schematic
# exporter, the NetlistLoader) to the CircuitBuilder. Values are still raw here:
# numbers or pint-parsable strings, not yet checked for dimension or sign.


@dataclass(frozen=True)
class ParsedDevice:
    """IR for a single device instance (e.g. 'R1', 'M3')."""
    name: str
    device_type: str
    ports: Dict[str, str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    model: Optional[str] = None
    transient: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class ParsedModel:
    """IR for a `.model` card: a named parameter set shared by diodes or MOSFETs."""
    name: str
    model_type: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedNetlist:
    """
    Top-level IR node: everything the engine needs to know about one circuit.

    `analyses` keeps the raw analysis mappings in file order; they are turned
    into typed configurations by `parse_analysis_config`. `node_names` is
    informational: the CircuitBuilder derives node order from device ports.
    `options` holds raw solver overrides (see `SolverOptions.from_mapping`).
    """
    title: str
    devices: Tuple[ParsedDevice, ...] = ()
    models: Tuple[ParsedModel, ...] = ()
    analyses: Tuple[Mapping[str, Any], ...] = ()
    node_names: Tuple[str, ...] = ()
    options: Dict[str, Any] = field(default_factory=dict)
    source_path: Optional[Path] = None

    def find_model(self, name: str) -> Optional[ParsedModel]:
        """Case-insensitive lookup of a model card by name."""
        wanted = name.lower()
        for model in self.models:
            if model.name.lower() == wanted:
                return model
        return None
