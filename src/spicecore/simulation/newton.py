# src/spicecore/simulation/newton.py
"""
Newton-Raphson solution of the circuit equations at one operating point.

Every iteration stamps all devices at the current iterate into a fresh MNA
system, solves it for the next iterate and compares the two. Updates of junction
nodes (the limited ports of nonlinear devices) larger than `max_voltage_step`
are clamped; nodes tied to ground through voltage sources alone are never clamped. An
iteration in which any clamp was applied never counts as converged.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import networkx as nx
import numpy as np

from ..components.capabilities import IIndependentSource
from ..constants import GROUND_INDEX
from ..data_structures import Circuit
from .config import SolverOptions
from .context import SimulationContext
from .exceptions import MnaInputError
from .mna import MnaAssembler, SolverState
from .solver import solve_linear_system

logger = logging.getLogger(__name__)


def limited_node_indices(circuit: Circuit) -> np.ndarray:
    """
    Unknown indices of the node voltages whose Newton updates are clamped.

    These are the nodes on each nonlinear device's `limited_ports`, minus the
    nodes connected to ground through a chain of voltage sources.
    """
    sources = nx.Graph()
    sources.add_node(GROUND_INDEX)
    limited = set()
    for device in circuit.devices:
        if device.branch_index is not None and device.get_capability(IIndependentSource) is not None:
            sources.add_edge(device.index_of('p'), device.index_of('n'))
        if device.is_nonlinear:
            limited.update(device.index_of(port) for port in device.limited_ports)
    limited -= nx.node_connected_component(sources, GROUND_INDEX)
    return np.array(sorted(limited), dtype=int)


@dataclass(frozen=True)
class NewtonResult:
    """Outcome of one Newton solve: the final iterate, converged or not."""
    converged: bool
    iterations: int
    unknowns: np.ndarray


class NewtonRaphsonSolver:
    """
    Solves one circuit repeatedly (operating point, sweep points, transient
    steps). The solver keeps no state between `solve` calls apart from
    immutable setup derived from the circuit and the options.
    """

    def __init__(self, circuit: Circuit, options: Optional[SolverOptions] = None,
                 assembler: Optional[MnaAssembler] = None):
        self.circuit: Circuit = circuit
        self.options: SolverOptions = options or SolverOptions()
        self.assembler: MnaAssembler = assembler or MnaAssembler(circuit)
        self.size: int = self.assembler.size
        self._node_count: int = circuit.node_count
        self._limited = limited_node_indices(circuit) if self.options.max_voltage_step is not None else np.zeros(0, dtype=int)

        # Absolute tolerance per unknown: vntol for node voltages, abstol for branch currents.
        self._abs_tol = np.full(self.size, self.options.abstol, dtype=float)
        self._abs_tol[:self._node_count] = self.options.vntol

    def default_context(self) -> SimulationContext:
        return SimulationContext(gmin=self.options.gmin)

    def solve(
        self,
        initial_guess: Optional[np.ndarray] = None,
        context: Optional[SimulationContext] = None,
        companion_states: Optional[Dict[str, float]] = None,
    ) -> NewtonResult:
        """
        Iterates from `initial_guess` (zero vector if None) until convergence or
        the iteration cap.

        Raises:
            SingularMatrixError: If the linearised system cannot be solved.
            MnaInputError: If `initial_guess` has the wrong length.
        """
        if self.size == 0:
            return NewtonResult(converged=True, iterations=0, unknowns=np.zeros(0, dtype=float))

        if initial_guess is not None and len(initial_guess) != self.size:
            raise MnaInputError(
                circuit_name=self.circuit.name,
                details=f"Initial guess has {len(initial_guess)} entries, the circuit has {self.size} unknowns."
            )
        context = context or self.default_context()
        state = SolverState.for_size(self.size, initial_guess)
        opts = self.options
        x = state.unknowns

        for iteration in range(1, opts.max_iterations + 1):
            self.assembler.assemble(state.system, x, context, companion_states)
            x_new = solve_linear_system(state.system.to_csc(), state.system.rhs, point=context.time)
            delta = x_new - x

            clamped = False
            if self._limited.size:
                junction_delta = delta[self._limited]
                if np.any(np.abs(junction_delta) > opts.max_voltage_step):
                    delta[self._limited] = np.clip(junction_delta, -opts.max_voltage_step, opts.max_voltage_step)
                    clamped = True

            if not clamped:
                bound = opts.reltol * np.maximum(np.abs(x), np.abs(x_new)) + self._abs_tol
                if np.all(np.abs(delta) <= bound):
                    logger.debug(f"Newton converged in {iteration} iteration(s).")
                    return NewtonResult(converged=True, iterations=iteration, unknowns=x_new)

            x = x + delta
            logger.debug(f"Newton iteration {iteration}: max |dx| = {np.max(np.abs(delta)):.3e}{' (clamped)' if clamped else ''}")

        logger.warning(
            f"Newton-Raphson did not converge in {opts.max_iterations} iterations for '{self.circuit.name}'"
            f"{'' if context.time is None else f' at t={context.time:.6g}'}."
        )
        return NewtonResult(converged=False, iterations=opts.max_iterations, unknowns=x)
