# src/spicecore/__init__.py
import logging
from .log_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)
logger.info("SPICE Core package initialized.")

from .units import ureg, pint, Quantity, VOLTAGE_DIMENSIONALITY, CURRENT_DIMENSIONALITY, TIME_DIMENSIONALITY
from .data_structures import Circuit, Node
from .netlist import NetlistLoader, ParsedNetlist, ParsedDevice, ParsedModel
from .circuit_builder import CircuitBuilder
from .validation import TopologyValidator
from .simulation import (
    SolverOptions, OpAnalysis, TranAnalysis, DcSweepAnalysis, parse_analysis_config,
    CancellationToken, SimulationResult, IssueKind,
    run_dc_op, run_dc_sweep, run_transient, run_simulation,
)
from .errors import SpiceCoreError, CircuitBuildError, SimulationRunError

__all__ = [
    # Units
    "ureg", "pint", "Quantity",
    # Canonical dimensionalities
    "VOLTAGE_DIMENSIONALITY", "CURRENT_DIMENSIONALITY", "TIME_DIMENSIONALITY",
    # Data Structures
    "Circuit", "Node",
    # Netlist input
    "NetlistLoader", "ParsedNetlist", "ParsedDevice", "ParsedModel",
    # Builder and validation
    "CircuitBuilder", "TopologyValidator",
    # Analysis configuration and results
    "SolverOptions", "OpAnalysis", "TranAnalysis", "DcSweepAnalysis", "parse_analysis_config",
    "CancellationToken", "SimulationResult", "IssueKind",
    # Simulation
    "run_dc_op", "run_dc_sweep", "run_transient", "run_simulation",
    # Top-Level Errors (Actionable Diagnostics)
    "SpiceCoreError", "CircuitBuildError", "SimulationRunError",
]
