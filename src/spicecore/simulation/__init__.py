# src/spicecore/simulation/__init__.py
from .exceptions import (
    MnaInputError,
    SingularMatrixError,
)
from .config import (
    SolverOptions,
    OpAnalysis,
    TranAnalysis,
    DcSweepAnalysis,
    AnalysisConfig,
    ConfigParsingError,
    parse_analysis_config,
)
from .context import SimulationContext
from .cancellation import CancellationToken
from .mna import MnaSystem, MnaAssembler
from .solver import solve_mna_system, factorize_mna_matrix, solve_linear_system
from .newton import NewtonRaphsonSolver, NewtonResult
from .transient import TransientIntegrator
from .results import Signal, Waveform, IssueKind, SimulationIssue, SimulationResult
from .engine import SimulationEngine
from .execution import run_dc_op, run_dc_sweep, run_transient, run_simulation

__all__ = [
    # Exceptions
    "MnaInputError",
    "SingularMatrixError",
    "ConfigParsingError",
    # Configuration
    "SolverOptions",
    "OpAnalysis",
    "TranAnalysis",
    "DcSweepAnalysis",
    "AnalysisConfig",
    "parse_analysis_config",
    "SimulationContext",
    "CancellationToken",
    # Core Classes
    "MnaSystem",
    "MnaAssembler",
    "solve_mna_system",
    "factorize_mna_matrix",
    "solve_linear_system",
    "NewtonRaphsonSolver",
    "NewtonResult",
    "TransientIntegrator",
    "SimulationEngine",
    # Results
    "Signal",
    "Waveform",
    "IssueKind",
    "SimulationIssue",
    "SimulationResult",
    # Drivers
    "run_dc_op",
    "run_dc_sweep",
    "run_transient",
    "run_simulation",
]
