# src/spicecore/simulation/execution.py
"""
The public entry points for running analyses.

Every function accepts either a built `Circuit` or a `ParsedNetlist`, which
is built first. Build errors, invalid solver options and the numerical
outcomes of the run are reported inside the returned `SimulationResult`;
only unexpected internal failures raise, as `SimulationRunError`.
"""
import logging
import time
from dataclasses import replace
from typing import List, Optional, Tuple, Union

from ..circuit_builder import CircuitBuilder
from ..data_structures import Circuit
from ..errors import CircuitBuildError, DiagnosableError, SimulationRunError, format_diagnostic_report
from ..netlist.raw_data import ParsedNetlist
from ..validation import TopologyValidator
from .cancellation import CancellationToken
from .config import (
    AnalysisConfig, ConfigParsingError, DcSweepAnalysis, OpAnalysis, SolverOptions, TranAnalysis,
)
from .engine import ProgressCallback, SimulationEngine
from .results import IssueKind, SimulationIssue, SimulationResult

logger = logging.getLogger(__name__)

CircuitInput = Union[Circuit, ParsedNetlist]


def run_dc_op(
    circuit: CircuitInput,
    options: Optional[SolverOptions] = None,
    config: Optional[OpAnalysis] = None,
) -> SimulationResult:
    """
    Solves the DC operating point from an all-zero initial guess.

    The result's `op_point` maps `V(node)` and `I(device)` labels to values;
    its waveform is empty.
    """
    return run_simulation(circuit, config if config is not None else OpAnalysis(), options=options)


def run_dc_sweep(
    circuit: CircuitInput,
    config: DcSweepAnalysis,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    options: Optional[SolverOptions] = None,
) -> SimulationResult:
    """
    Sweeps the value of one independent source, seeding each point with the
    solution of the previous one.
    """
    return run_simulation(circuit, config, options=options, on_progress=on_progress, cancel_token=cancel_token)


def run_transient(
    circuit: CircuitInput,
    config: TranAnalysis,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    options: Optional[SolverOptions] = None,
) -> SimulationResult:
    """
    Integrates the circuit from its t=0 operating point with fixed-step
    backward Euler. `on_progress` receives the completed fraction every
    `options.progress_interval` steps and is never called after this
    function returns.
    """
    return run_simulation(circuit, config, options=options, on_progress=on_progress, cancel_token=cancel_token)


def run_simulation(
    circuit: CircuitInput,
    config: Optional[AnalysisConfig] = None,
    options: Optional[SolverOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> SimulationResult:
    """
    Runs the analysis described by `config`, an operating point when None.

    Args:
        circuit: A built `Circuit`, or a `ParsedNetlist` to build first.
        config: The analysis to run.
        options: Solver options. When None, the netlist's `options` block is
                 used if there is one, else the defaults.
        on_progress: Progress callback for sweeps and transients.
        cancel_token: Token checked between sweep points and transient steps.

    Raises:
        SimulationRunError: For unexpected internal failures only.
    """
    config = config if config is not None else OpAnalysis()
    started = time.perf_counter()
    try:
        built, issues = _prepare_circuit(circuit)
        if built is None:
            return _failed_result(config, started, issues)

        solver_options, option_issues = _resolve_options(built, options)
        if option_issues:
            return _failed_result(config, started, option_issues)

        validation_issues = TopologyValidator(built).validate()
        result = SimulationEngine(built, solver_options).run(config, on_progress, cancel_token)
        return replace(result, validation_issues=tuple(validation_issues))

    except DiagnosableError as e:
        logger.error(f"A diagnosable error occurred during simulation: {e}")
        raise SimulationRunError(e.get_diagnostic_report()) from e

    except Exception as e:
        logger.critical(f"An unexpected internal error occurred during simulation: {e}", exc_info=True)
        report = format_diagnostic_report(
            error_type=f"An Unexpected Simulation Error Occurred ({type(e).__name__})",
            details=f"The simulator encountered an unexpected internal error: {e}",
            suggestion="This may be a bug. Review the traceback and consider filing a bug report.",
            context={}
        )
        raise SimulationRunError(report) from e


def _prepare_circuit(circuit: CircuitInput) -> Tuple[Optional[Circuit], List[SimulationIssue]]:
    if isinstance(circuit, Circuit):
        return circuit, []
    if not isinstance(circuit, ParsedNetlist):
        raise TypeError(f"Expected a Circuit or ParsedNetlist, got {type(circuit).__name__}.")
    try:
        return CircuitBuilder().build(circuit), []
    except CircuitBuildError as e:
        logger.error(f"Netlist '{circuit.title}' could not be built.")
        return None, [SimulationIssue(IssueKind.CONFIGURATION, "The netlist could not be built into a circuit.", report=str(e))]


def _resolve_options(
    circuit: Circuit, options: Optional[SolverOptions]
) -> Tuple[SolverOptions, List[SimulationIssue]]:
    if options is not None:
        return options, []
    raw = circuit.raw_ir_root.options if circuit.raw_ir_root is not None else None
    try:
        return SolverOptions.from_mapping(raw), []
    except ConfigParsingError as e:
        logger.error(f"Invalid solver options in netlist: {e}")
        return SolverOptions(), [SimulationIssue(IssueKind.CONFIGURATION, f"Invalid solver options: {e}")]


def _failed_result(config: AnalysisConfig, started: float, issues: List[SimulationIssue]) -> SimulationResult:
    return SimulationResult(
        analysis=config,
        converged=False,
        iterations=0,
        elapsed=time.perf_counter() - started,
        issues=tuple(issues),
    )
