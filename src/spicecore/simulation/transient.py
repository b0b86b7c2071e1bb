# src/spicecore/simulation/transient.py
"""
Fixed-step backward-Euler transient integration.

Simulated time always starts at 0 from a seed solution (normally the operating
point with sources evaluated at t=0). Step k ends at min(k*step, stop), so the
last step may be shorter. Each step replaces capacitors and inductors by their
companion models built from the last accepted solution and runs a Newton
solve seeded with that solution. Only points with t >= start are recorded.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .cancellation import CancellationToken
from .config import TranAnalysis
from .context import SimulationContext
from .exceptions import SingularMatrixError
from .newton import NewtonRaphsonSolver
from .results import IssueKind, Signal, SimulationIssue, unit_for_label

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass
class TransientOutcome:
    """What the integrator hands back to the analysis driver."""
    signals: List[Signal]
    issues: List[SimulationIssue] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True
    cancelled: bool = False
    steps_completed: int = 0


class TransientIntegrator:
    """
    Runs the time loop for one circuit. `probes` lists the (label, unknown
    index) pairs to record, typically every node voltage and branch current.
    """

    def __init__(self, solver: NewtonRaphsonSolver, probes: Sequence[Tuple[str, int]]):
        self.solver: NewtonRaphsonSolver = solver
        self.assembler = solver.assembler
        self.probes: List[Tuple[str, int]] = list(probes)

    def run(
        self,
        config: TranAnalysis,
        seed: Optional[np.ndarray],
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        context: Optional[SimulationContext] = None,
    ) -> TransientOutcome:
        """
        Integrates from t=0 to `config.stop`.

        Args:
            config: Step, stop and record-start times.
            seed: Solution at t=0. When None (the operating point could not be
                  solved) integration starts from all-zero initial conditions
                  and no t=0 point is recorded.
            on_progress: Called with the completed fraction every
                         `progress_interval` steps.
            cancel_token: Checked before every step.
            context: Base context (gmin); time and step are filled in per step.
        """
        base_context = context or self.solver.default_context()
        outcome = TransientOutcome(signals=[Signal(label, unit_for_label(label)) for label, _ in self.probes])
        record_from = config.start - 1e-9 * config.step
        interval = self.solver.options.progress_interval
        total_steps = config.step_count

        if seed is None:
            previous = np.zeros(self.solver.size, dtype=float)
        else:
            previous = np.asarray(seed, dtype=float)
            self._record(outcome, 0.0, previous, record_from)
        previous_time = 0.0
        states = self.assembler.companion_states(previous)

        logger.info(f"Transient: {total_steps} step(s) of {config.step:.4g} s up to {config.stop:.4g} s.")
        for k in range(1, total_steps + 1):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(f"Transient cancelled after {outcome.steps_completed} of {total_steps} step(s).")
                outcome.cancelled = True
                break

            t = config.time_at(k)
            step_context = base_context.at_time(t, t - previous_time)
            try:
                result = self.solver.solve(previous, step_context, states)
            except SingularMatrixError as e:
                logger.error(f"Singular matrix at t={t:.6g} s; skipping step.")
                outcome.issues.append(SimulationIssue(
                    kind=IssueKind.SINGULAR_MATRIX,
                    message=f"Singular matrix at t={t:.6g} s; step skipped.",
                    x=t,
                    report=e.get_diagnostic_report(),
                ))
                outcome.converged = False
            else:
                outcome.iterations += result.iterations
                if not result.converged:
                    outcome.converged = False
                    outcome.issues.append(SimulationIssue(
                        kind=IssueKind.NON_CONVERGENCE,
                        message=f"Newton-Raphson did not converge at t={t:.6g} s; best-effort values recorded.",
                        x=t,
                    ))
                previous = result.unknowns
                previous_time = t
                states = self.assembler.companion_states(previous)
                self._record(outcome, t, previous, record_from)

            outcome.steps_completed = k
            if on_progress is not None and k % interval == 0:
                on_progress(k / total_steps)

        for signal in outcome.signals:
            signal.finalize()
        return outcome

    def _record(self, outcome: TransientOutcome, t: float, unknowns: np.ndarray, record_from: float) -> None:
        if t < record_from:
            return
        for signal, (_, index) in zip(outcome.signals, self.probes):
            signal.append(t, unknowns[index])
