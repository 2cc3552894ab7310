import warnings
import numpy as np
import scipy.sparse as sps
from scipy.sparse import SparseEfficiencyWarning
from .matrix_checks import matrix_is_complex, matrix_is_sparse, matrix_is_finite
from .solvers import LinearSolver

try:
    from scikits.umfpack import splu  # UMFPACK solver; this one is faster and has identical interface
except ImportError:
    from scipy.sparse.linalg import splu


class SolverSparseLU(LinearSolver):
    """Solver for sparse (square) matrices using an LU decomposition.

    Internally, `scipy` uses the SuperLU library, which is relatively slow. It may be sped up using the Python package
    ``scikit-umfpack``, which is used automatically when installed.

    A (numerically) singular matrix raises a :class:`numpy.linalg.LinAlgError`, either during factorization or when
    the solution contains non-finite values.

    References:
      - `Scipy LU <https://docs.scipy.org/doc/scipy/reference/generated/scipy.sparse.linalg.splu.html>`_
      - `Scipy UMFPACK <https://docs.scipy.org/doc/scipy/reference/generated/scipy.sparse.linalg.use_solver.html>`_
    """

    def update(self, A):
        r"""Factorize the matrix as :math:`\mathbf{A}=\mathbf{L}\mathbf{U}`, where :math:`\mathbf{L}` is a lower
        triangular matrix and :math:`\mathbf{U}` is upper triangular.
        """
        if matrix_is_complex(A):
            raise TypeError(f"{type(self).__name__} is only implemented for real-valued matrices")
        if not matrix_is_sparse(A):
            warnings.warn(f"{type(self).__name__}: Efficiency warning: Matrix should be sparse",
                          SparseEfficiencyWarning)
        if not matrix_is_finite(A):
            raise np.linalg.LinAlgError("Matrix contains non-finite values")
        try:
            self.inv = splu(sps.csc_matrix(A))
        except RuntimeError as err:
            raise np.linalg.LinAlgError(f"LU factorization failed: {err}") from err
        return self

    def solve(self, rhs, x0=None, trans="N"):
        r"""Solves the linear system of equations :math:`\mathbf{A} \mathbf{x} = \mathbf{b}` by forward and backward
        substitution of :math:`\mathbf{x} = \mathbf{U}^{-1}\mathbf{L}^{-1}\mathbf{b}`.
        """
        if trans not in ["N", "T"]:
            raise TypeError("Only N or T transposition is possible")
        return self._check_solution(self.inv.solve(np.asarray(rhs, dtype=float), trans=trans))
