# src/spicecore/simulation/solver.py
import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as splinalg

from ..constants import PIVOT_ABS_TOLERANCE
from .exceptions import SingularMatrixError

logger = logging.getLogger(__name__)


def factorize_mna_matrix(matrix: sp.spmatrix, point: Optional[float] = None) -> splinalg.SuperLU:
    """
    Factorizes the MNA matrix using sparse LU decomposition.

    Args:
        matrix: The square MNA matrix (any SciPy sparse format).
        point: Simulated time or swept value, for diagnostics only.

    Returns:
        The LU factorization object (splinalg.SuperLU).

    Raises:
        SingularMatrixError: If the matrix is exactly singular or a pivot of
            the factorization is smaller than PIVOT_ABS_TOLERANCE.
        TypeError: If input is not a sparse matrix.
    """
    if not sp.issparse(matrix):
        raise TypeError("Input matrix must be a SciPy sparse matrix.")
    if matrix.shape[0] != matrix.shape[1]:
        raise ValueError("MNA matrix must be square.")

    logger.debug(f"Factorizing MNA matrix ({matrix.shape}, nnz={matrix.nnz})...")
    try:
        lu = splinalg.splu(sp.csc_matrix(matrix, dtype=float))
    except RuntimeError as e:
        logger.error(f"LU factorization failed, matrix appears singular: {e}")
        raise SingularMatrixError(details=str(e), point=point) from e

    pivots = np.abs(lu.U.diagonal())
    if pivots.size and pivots.min() < PIVOT_ABS_TOLERANCE:
        row = int(np.argmin(pivots))
        logger.error(f"LU factorization produced a near-zero pivot ({pivots[row]:.3e}).")
        raise SingularMatrixError(
            details=f"Pivot {row} of the LU factorization is {pivots[row]:.3e}, below {PIVOT_ABS_TOLERANCE:.0e}.",
            point=point,
        )
    return lu


def solve_mna_system(lu_factorization: splinalg.SuperLU, rhs: np.ndarray, point: Optional[float] = None) -> np.ndarray:
    """Solves the MNA system using a pre-computed LU factorization."""
    if not isinstance(lu_factorization, splinalg.SuperLU):
        raise TypeError("lu_factorization must be a SuperLU object from splinalg.splu.")

    solution = lu_factorization.solve(np.asarray(rhs, dtype=float))

    if not np.all(np.isfinite(solution)):
        logger.error("NaN or Inf detected in MNA solution vector.")
        raise SingularMatrixError(details="MNA system solve resulted in NaN/Inf values.", point=point)

    return solution


def solve_linear_system(matrix: sp.spmatrix, rhs: np.ndarray, point: Optional[float] = None) -> np.ndarray:
    """
    Factorizes and solves in one call. A 0x0 system yields an empty vector.

    Raises:
        SingularMatrixError: See `factorize_mna_matrix` and `solve_mna_system`.
    """
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=float)
    lu = factorize_mna_matrix(matrix, point=point)
    return solve_mna_system(lu, rhs, point=point)
