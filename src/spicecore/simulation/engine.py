# src/spicecore/simulation/engine.py
"""
Defines the `SimulationEngine`, which runs the analyses of one circuit.

The engine owns the Newton solver for its circuit and turns every numerical
failure into a `SimulationIssue` on the result: a singular system skips the
point, a non-converged solve keeps its best-effort values, and a bad sweep
source or probe name is reported as a configuration problem. Exceptions that
are not diagnosable propagate to the caller.
"""
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..components.capabilities import IIndependentSource
from ..components.exceptions import ComponentError
from ..data_structures import Circuit
from .cancellation import CancellationToken
from .config import AnalysisConfig, DcSweepAnalysis, OpAnalysis, SolverOptions, TranAnalysis
from .exceptions import SingularMatrixError
from .newton import NewtonRaphsonSolver, NewtonResult
from .results import IssueKind, Signal, SimulationIssue, SimulationResult, Waveform, unit_for_label
from .transient import TransientIntegrator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
Probe = Tuple[str, int]

_UNIT_SYMBOLS = {"volt": "V", "ampere": "A"}


class SimulationEngine:
    """
    Runs operating-point, DC-sweep and transient analyses on one `Circuit`.
    The circuit is never modified, so one engine may run any number of
    analyses in sequence.
    """

    def __init__(self, circuit: Circuit, options: Optional[SolverOptions] = None):
        self.circuit: Circuit = circuit
        self.options: SolverOptions = options or SolverOptions()
        self.solver = NewtonRaphsonSolver(circuit, self.options)
        self._labels: List[str] = circuit.unknown_labels
        logger.debug(f"SimulationEngine initialized for '{circuit.name}' with {self.solver.size} unknown(s).")

    def run(
        self,
        config: Optional[AnalysisConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SimulationResult:
        """Dispatches on `config.type`; None means an operating point."""
        config = config if config is not None else OpAnalysis()
        if config.type == "op":
            return self.run_op(config)
        if config.type == "dc":
            return self.run_dc_sweep(config, on_progress, cancel_token)
        if config.type == "tran":
            return self.run_transient(config, on_progress, cancel_token)
        raise ValueError(f"Unsupported analysis type '{config.type}'.")

    # --- Operating point ---

    def run_op(self, config: Optional[OpAnalysis] = None) -> SimulationResult:
        config = config if config is not None else OpAnalysis()
        started = time.perf_counter()
        logger.info(f"--- Operating point of '{self.circuit.name}' ---")
        probes, issues = self._resolve_probes(config.probes)

        op_point = None
        converged = False
        iterations = 0
        try:
            result = self.solver.solve(None, self.solver.default_context())
        except SingularMatrixError as e:
            logger.error(f"Operating point of '{self.circuit.name}' failed: {e}")
            issues.append(self._singular_issue(e, "Singular matrix while solving the operating point.", None))
        except ComponentError as e:
            issues.append(self._configuration_issue(str(e), e.get_diagnostic_report()))
        else:
            iterations = result.iterations
            converged = result.converged
            op_point = self._op_point(result.unknowns, probes)
            if not result.converged:
                issues.append(self._non_convergence_issue(result, "the operating point", None))

        return self._finish(config, started, converged, iterations, issues, op_point=op_point)

    # --- DC sweep ---

    def run_dc_sweep(
        self,
        config: DcSweepAnalysis,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SimulationResult:
        started = time.perf_counter()
        logger.info(f"--- DC sweep of '{config.source}' in '{self.circuit.name}' ---")
        probes, issues = self._resolve_probes(config.probes)

        source = self.circuit.find_device(config.source)
        if source is None or source.get_capability(IIndependentSource) is None:
            message = f"DC sweep source '{config.source}' is not an independent source of circuit '{self.circuit.name}'."
            logger.error(message)
            issues.append(self._configuration_issue(message))
            return self._finish(config, started, False, 0, issues)

        x_unit = _UNIT_SYMBOLS.get(getattr(source, "level_unit", "volt"), "")
        base_context = self.solver.default_context()
        values = config.values()
        total = len(values)
        interval = self.options.progress_interval

        points: List[Tuple[float, np.ndarray]] = []
        iterations = 0
        converged = True
        cancelled = False
        previous: Optional[np.ndarray] = None

        for k, value in enumerate(values, start=1):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(f"DC sweep cancelled after {k - 1} of {total} point(s).")
                cancelled = True
                break

            context = base_context.with_override(source.instance_id, value)
            try:
                result = self.solver.solve(previous, context)
            except SingularMatrixError as e:
                logger.error(f"Singular matrix at {config.source}={value:.6g}; skipping point.")
                issues.append(self._singular_issue(e, f"Singular matrix at {config.source}={value:.6g}; point skipped.", value))
                converged = False
            except ComponentError as e:
                issues.append(self._configuration_issue(str(e), e.get_diagnostic_report()))
                converged = False
                break
            else:
                iterations += result.iterations
                if not result.converged:
                    converged = False
                    issues.append(self._non_convergence_issue(result, f"{config.source}={value:.6g}", value))
                previous = result.unknowns
                points.append((value, result.unknowns))

            if on_progress is not None and k % interval == 0:
                on_progress(k / total)

        # Signals need non-decreasing x, so a downward sweep is recorded in ascending order.
        signals = self._new_signals(probes)
        for value, unknowns in sorted(points, key=lambda p: p[0]):
            for signal, (_, index) in zip(signals, probes):
                signal.append(value, unknowns[index])
        for signal in signals:
            signal.finalize()

        logger.info(f"DC sweep finished: {len(points)} of {total} point(s) recorded, {iterations} Newton iteration(s).")
        return self._finish(
            config, started, converged, iterations, issues,
            waveform=Waveform(signals=tuple(signals), x_unit=x_unit), cancelled=cancelled,
        )

    # --- Transient ---

    def run_transient(
        self,
        config: TranAnalysis,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SimulationResult:
        started = time.perf_counter()
        logger.info(f"--- Transient analysis of '{self.circuit.name}' ---")
        probes, issues = self._resolve_probes(config.probes)
        base_context = self.solver.default_context()

        converged = True
        iterations = 0
        seed: Optional[np.ndarray] = None
        op_point = None
        try:
            op = self.solver.solve(None, base_context.at_time(0.0))
        except SingularMatrixError as e:
            logger.error(f"Initial operating point failed ({e}); starting from zero initial conditions.")
            issues.append(self._singular_issue(e, "Singular matrix at t=0; starting from zero initial conditions.", 0.0))
            converged = False
        except ComponentError as e:
            issues.append(self._configuration_issue(str(e), e.get_diagnostic_report()))
            return self._finish(config, started, False, 0, issues)
        else:
            iterations += op.iterations
            seed = op.unknowns
            op_point = self._op_point(op.unknowns, None)
            if not op.converged:
                converged = False
                issues.append(self._non_convergence_issue(op, "t=0", 0.0))

        integrator = TransientIntegrator(self.solver, probes)
        try:
            outcome = integrator.run(config, seed, on_progress=on_progress,
                                     cancel_token=cancel_token, context=base_context)
        except ComponentError as e:
            issues.append(self._configuration_issue(str(e), e.get_diagnostic_report()))
            return self._finish(config, started, False, iterations, issues, op_point=op_point)

        issues.extend(outcome.issues)
        logger.info(
            f"Transient finished: {outcome.steps_completed} of {config.step_count} step(s), "
            f"{iterations + outcome.iterations} Newton iteration(s)."
        )
        return self._finish(
            config, started, converged and outcome.converged, iterations + outcome.iterations, issues,
            op_point=op_point, waveform=Waveform(signals=tuple(outcome.signals), x_unit="s"),
            cancelled=outcome.cancelled,
        )

    # --- Helpers ---

    def _resolve_probes(self, requested: Optional[Sequence[str]]) -> Tuple[List[Probe], List[SimulationIssue]]:
        """
        Maps probe names to unknown indices. Labels match case-insensitively and
        a bare node name stands for its voltage, so 'out' selects 'V(out)'.
        Unknown names become configuration issues.
        """
        if requested is None:
            return [(label, idx) for idx, label in enumerate(self._labels)], []

        folded: Dict[str, Probe] = {label.lower(): (label, idx) for idx, label in enumerate(self._labels)}
        probes: List[Probe] = []
        issues: List[SimulationIssue] = []
        for name in requested:
            key = name.lower()
            probe = folded.get(key) or folded.get(f"v({key})")
            if probe is None:
                message = f"Probe '{name}' does not name a node voltage or branch current of '{self.circuit.name}'."
                logger.error(message)
                issues.append(self._configuration_issue(message))
            elif probe not in probes:
                probes.append(probe)
        return probes, issues

    def _op_point(self, unknowns: np.ndarray, probes: Optional[List[Probe]]) -> Dict[str, float]:
        if probes is None:
            return {label: float(unknowns[idx]) for idx, label in enumerate(self._labels)}
        return {label: float(unknowns[idx]) for label, idx in probes}

    @staticmethod
    def _new_signals(probes: List[Probe]) -> List[Signal]:
        return [Signal(label, unit_for_label(label)) for label, _ in probes]

    @staticmethod
    def _singular_issue(error: SingularMatrixError, message: str, x: Optional[float]) -> SimulationIssue:
        return SimulationIssue(IssueKind.SINGULAR_MATRIX, message, x=x, report=error.get_diagnostic_report())

    @staticmethod
    def _configuration_issue(message: str, report: Optional[str] = None) -> SimulationIssue:
        return SimulationIssue(IssueKind.CONFIGURATION, message, report=report)

    def _non_convergence_issue(self, result: NewtonResult, where: str, x: Optional[float]) -> SimulationIssue:
        return SimulationIssue(
            IssueKind.NON_CONVERGENCE,
            f"Newton-Raphson did not converge at {where} within {result.iterations} iterations; best-effort values reported.",
            x=x,
        )

    def _finish(
        self,
        config: AnalysisConfig,
        started: float,
        converged: bool,
        iterations: int,
        issues: List[SimulationIssue],
        op_point: Optional[Dict[str, float]] = None,
        waveform: Optional[Waveform] = None,
        cancelled: bool = False,
    ) -> SimulationResult:
        has_config_issue = any(issue.kind is IssueKind.CONFIGURATION for issue in issues)
        result = SimulationResult(
            analysis=config,
            converged=converged and not has_config_issue,
            iterations=iterations,
            op_point=op_point,
            waveform=waveform if waveform is not None else Waveform(),
            elapsed=time.perf_counter() - started,
            issues=tuple(issues),
            cancelled=cancelled,
        )
        logger.info(
            f"Analysis '{config.type}' of '{self.circuit.name}' finished in {result.elapsed:.3f} s: "
            f"converged={result.converged}, {len(result.issues)} issue(s)."
        )
        return result
