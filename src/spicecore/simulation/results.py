# src/spicecore/simulation/results.py
"""
Data contracts for analysis results.

`Signal` is the one mutable type: drivers append to it while an analysis runs
and freeze it with `finalize()` before it is placed in a `SimulationResult`.
Everything a caller receives is immutable.
"""
import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

if TYPE_CHECKING:
    from ..validation.issues import ValidationIssue
    from .config import AnalysisConfig


def unit_for_label(label: str) -> str:
    """'A' for branch-current labels `I(...)`, 'V' for node voltages."""
    return "A" if label.upper().startswith("I(") else "V"


class Signal:
    """
    A named series of (x, value) points with non-decreasing x: time for a
    transient, the swept value for a DC sweep.
    """

    def __init__(self, name: str, unit: str):
        self.name: str = name
        self.unit: str = unit
        self._data: Union[List[Tuple[float, float]], Tuple[Tuple[float, float], ...]] = []

    @property
    def is_final(self) -> bool:
        return isinstance(self._data, tuple)

    @property
    def data(self) -> Sequence[Tuple[float, float]]:
        return self._data

    def append(self, x: float, value: float) -> None:
        """
        Raises:
            ValueError: If `x` is smaller than the last recorded x.
            RuntimeError: If the signal was already finalized.
        """
        if self.is_final:
            raise RuntimeError(f"Signal '{self.name}' is finalized and cannot be extended.")
        if self._data and x < self._data[-1][0]:
            raise ValueError(f"Signal '{self.name}': x={x!r} precedes the last recorded x={self._data[-1][0]!r}.")
        self._data.append((float(x), float(value)))

    def finalize(self) -> None:
        if not self.is_final:
            self._data = tuple(self._data)

    @property
    def x(self) -> np.ndarray:
        return np.array([p[0] for p in self._data], dtype=float)

    @property
    def values(self) -> np.ndarray:
        return np.array([p[1] for p in self._data], dtype=float)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Signal(name='{self.name}', unit='{self.unit}', points={len(self)})"


@dataclass(frozen=True)
class Waveform:
    """The signals of one analysis and the unit of their shared x axis."""
    signals: Tuple[Signal, ...] = ()
    x_unit: str = ""

    def get(self, name: str) -> Optional[Signal]:
        """Case-insensitive signal lookup."""
        wanted = name.lower()
        for signal in self.signals:
            if signal.name.lower() == wanted:
                return signal
        return None

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.signals]


class IssueKind(enum.Enum):
    """The three failure outcomes an analysis can report."""
    NON_CONVERGENCE = "non_convergence"
    SINGULAR_MATRIX = "singular_matrix"
    CONFIGURATION = "configuration"


@dataclass(frozen=True)
class SimulationIssue:
    """
    One reported problem. `x` is the time or swept value it occurred at (None
    for the operating point or configuration problems); `report` is the full
    diagnostic report when one is available.
    """
    kind: IssueKind
    message: str
    x: Optional[float] = None
    report: Optional[str] = None


@dataclass(frozen=True)
class SimulationResult:
    """
    The uniform result of every analysis driver.

    Attributes:
        analysis: The configuration that was run.
        converged: True only if every Newton solve of the analysis converged and
                   no point was skipped.
        iterations: Total Newton iterations across the analysis.
        op_point: Label (`V(node)`, `I(device)`) to value for the operating
                  point; for a transient, the t=0 solution. None for a sweep.
        waveform: Recorded signals (empty for an operating point).
        elapsed: Wall-clock duration in seconds.
        issues: Non-convergence, singular-matrix and configuration problems.
        validation_issues: Topology warnings found before solving.
        cancelled: True if a cancellation token stopped the run early.
    """
    analysis: "AnalysisConfig"
    converged: bool
    iterations: int
    op_point: Optional[Mapping[str, float]] = None
    waveform: Waveform = field(default_factory=Waveform)
    elapsed: float = 0.0
    issues: Tuple[SimulationIssue, ...] = ()
    validation_issues: Tuple["ValidationIssue", ...] = ()
    cancelled: bool = False

    def signal(self, name: str) -> Optional[Signal]:
        return self.waveform.get(name)

    def issues_of(self, kind: IssueKind) -> List[SimulationIssue]:
        return [issue for issue in self.issues if issue.kind is kind]
