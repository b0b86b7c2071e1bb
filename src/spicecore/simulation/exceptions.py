# src/spicecore/simulation/exceptions.py
"""
Diagnosable exceptions raised while an analysis is running.

Both classes derive from `DiagnosableError`. `SingularMatrixError` also derives
from `numpy.linalg.LinAlgError` so that callers using plain numpy idioms can
catch it too. Non-convergence is not an exception: it is reported through
`NewtonResult.converged` and `SimulationResult.issues`.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class MnaInputError(DiagnosableError):
    """
    Raised for structural errors in the MNA inputs, e.g. an initial guess or
    companion state that does not match the circuit's unknown layout.
    """
    circuit_name: str
    details: str

    def __str__(self):
        return f"MNA input error in '{self.circuit_name}': {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="MNA Input Error",
            details=self.details,
            suggestion="The arguments passed to the solver do not match the circuit. Rebuild the circuit and pass vectors of length unknown_count.",
            context={'device': self.circuit_name}
        )


@dataclass()
class SingularMatrixError(DiagnosableError, np.linalg.LinAlgError):
    """
    Raised when the MNA matrix cannot be factorized or the solution is not
    finite. `point` is the simulated time or swept value, when known.
    """
    details: str
    point: Optional[float] = None

    def __str__(self):
        point_str = f" at {self.point:.6g}" if self.point is not None else ""
        return f"Singular matrix detected{point_str}: {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Singular Matrix Encountered",
            details=self.details,
            suggestion="This is often caused by a floating node with no DC path to ground, a loop of ideal voltage sources or inductors, or a current source in series with a capacitor.",
            context={'point': self.point}
        )
