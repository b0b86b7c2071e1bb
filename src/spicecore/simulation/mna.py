# src/spicecore/simulation/mna.py

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from ..components.base import DeviceBase
from ..components.capabilities import ICompanionModel, IStampContributor
from ..components.exceptions import ComponentError
from ..data_structures import Circuit
from .context import SimulationContext
from .exceptions import MnaInputError


logger = logging.getLogger(__name__)


class MnaSystem:
    """
    The linear system G·x = rhs of one Newton iteration.

    Matrix entries are accumulated as COO triplets (duplicates are summed when
    the matrix is converted), so stamping never needs a precomputed sparsity
    pattern. Any stamp addressed to a negative index, i.e. the ground node, is
    dropped.
    """

    def __init__(self, size: int):
        self.size: int = size
        self._rows: List[int] = []
        self._cols: List[int] = []
        self._vals: List[float] = []
        self.rhs: np.ndarray = np.zeros(size, dtype=float)

    def clear(self) -> None:
        self._rows.clear()
        self._cols.clear()
        self._vals.clear()
        self.rhs.fill(0.0)

    def add(self, row: int, col: int, value: float) -> None:
        if row < 0 or col < 0:
            return
        self._rows.append(row)
        self._cols.append(col)
        self._vals.append(value)

    def add_rhs(self, row: int, value: float) -> None:
        if row >= 0:
            self.rhs[row] += value

    def add_conductance(self, a: int, b: int, g: float) -> None:
        """Conductance `g` between nodes a and b."""
        self.add(a, a, g)
        self.add(b, b, g)
        self.add(a, b, -g)
        self.add(b, a, -g)

    def add_current(self, a: int, b: int, current: float) -> None:
        """Constant current flowing from node a through the device to node b."""
        self.add_rhs(a, -current)
        self.add_rhs(b, current)

    def add_transconductance(self, out_p: int, out_n: int, ctrl_p: int, ctrl_n: int, gm: float) -> None:
        """Current gm·(V(ctrl_p) - V(ctrl_n)) flowing from out_p to out_n."""
        self.add(out_p, ctrl_p, gm)
        self.add(out_p, ctrl_n, -gm)
        self.add(out_n, ctrl_p, -gm)
        self.add(out_n, ctrl_n, gm)

    def to_csc(self) -> sp.csc_matrix:
        coo = sp.coo_matrix(
            (np.asarray(self._vals, dtype=float), (np.asarray(self._rows, dtype=int), np.asarray(self._cols, dtype=int))),
            shape=(self.size, self.size),
        )
        return coo.tocsc()

    def to_dense(self) -> np.ndarray:
        return self.to_csc().toarray()


@dataclass
class SolverState:
    """
    Per-solve scratch: the current unknown vector and the MNA system it is
    stamped into. Owned by a single solve call and never shared.
    """
    unknowns: np.ndarray
    system: MnaSystem

    @classmethod
    def for_size(cls, size: int, initial_guess: Optional[np.ndarray] = None) -> "SolverState":
        unknowns = np.zeros(size, dtype=float) if initial_guess is None else np.array(initial_guess, dtype=float)
        return cls(unknowns=unknowns, system=MnaSystem(size))


class MnaAssembler:
    """
    Stamps every device of a circuit into an `MnaSystem`.

    The assembler is agnostic to device types: it only talks to devices through
    their `IStampContributor` and `ICompanionModel` capabilities, resolved once
    at construction.
    """

    def __init__(self, circuit: Circuit):
        if not isinstance(circuit, Circuit):
            raise MnaInputError(circuit_name=str(circuit), details="MnaAssembler requires a built Circuit.")
        self.circuit: Circuit = circuit
        self.size: int = circuit.unknown_count

        self._stampers: List[Tuple[DeviceBase, IStampContributor]] = []
        self._companions: List[Tuple[DeviceBase, ICompanionModel]] = []
        for device in circuit.devices:
            stamper = device.get_capability(IStampContributor)
            if stamper is None:
                logger.debug(f"Device '{device.instance_id}' provides no stamp. Skipping.")
            else:
                self._stampers.append((device, stamper))
            companion = device.get_capability(ICompanionModel)
            if companion is not None:
                self._companions.append((device, companion))

        logger.debug(
            f"MNA Assembler initialized for circuit '{circuit.name}': size {self.size}, "
            f"{len(self._stampers)} stamping device(s), {len(self._companions)} reactive device(s)."
        )

    def assemble(
        self,
        system: MnaSystem,
        unknowns: np.ndarray,
        context: SimulationContext,
        companion_states: Optional[Dict[str, float]] = None,
    ) -> None:
        """
        Clears `system` and stamps all devices at the iterate `unknowns`.

        When `companion_states` is given (transient step), reactive devices also
        stamp their backward-Euler companion for a step of `context.step`.
        """
        system.clear()
        for device, stamper in self._stampers:
            try:
                stamper.stamp(device, system, unknowns, context)
            except (IndexError, KeyError) as e:
                raise ComponentError(
                    component_name=device.instance_id,
                    details=f"Stamping failed: {type(e).__name__}: {e}",
                    point=context.time,
                ) from e

        if companion_states is None:
            return
        if context.step is None or context.step <= 0:
            raise MnaInputError(circuit_name=self.circuit.name, details="Companion stamps need a positive time step.")
        for device, companion in self._companions:
            try:
                previous = companion_states[device.instance_id]
            except KeyError:
                raise MnaInputError(
                    circuit_name=self.circuit.name,
                    details=f"No companion state for reactive device '{device.instance_id}'."
                ) from None
            companion.stamp_companion(device, system, previous, context.step)

    def companion_states(self, unknowns: np.ndarray) -> Dict[str, float]:
        """Extracts the state of every reactive device from an accepted solution."""
        return {device.instance_id: companion.state_from(device, unknowns) for device, companion in self._companions}
