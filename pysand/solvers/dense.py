import warnings
import numpy as np
import scipy.linalg as spla
from .solvers import LinearSolver


class SolverDenseLU(LinearSolver):
    """ Solver for dense (square) matrices using an LU decomposition, intended for small systems """
    def update(self, A):
        r"""  Factorize the matrix as :math:`\mathbf{A}=\mathbf{P}\mathbf{L}\mathbf{U}`, where :math:`\mathbf{L}` is a
        lower triangular matrix and :math:`\mathbf{U}` is upper triangular.
        """
        if hasattr(A, 'toarray'):
            A = A.toarray()
        with warnings.catch_warnings():
            warnings.simplefilter("error", spla.LinAlgWarning)
            try:
                self.lu, self.piv = spla.lu_factor(np.asarray(A, dtype=float), check_finite=True)
            except (ValueError, spla.LinAlgWarning) as err:
                raise np.linalg.LinAlgError(f"LU factorization failed: {err}") from err
        if np.any(np.diag(self.lu) == 0):
            raise np.linalg.LinAlgError("Matrix is singular")
        return self

    def solve(self, rhs, x0=None, trans='N'):
        r""" Solves the linear system of equations using the LU factorization.

        ======= ================= =========================
        `trans`     Equation        Solution of :math:`x`
        ------- ----------------- -------------------------
          `N`   :math:`A x = b`   :math:`x = U^{-1} L^{-1}`
          `T`   :math:`A^T x = b` :math:`x = L^{-1} U^{-1}`
        ======= ================= =========================
        """
        if trans == 'N':
            return self._check_solution(spla.lu_solve((self.lu, self.piv), rhs, trans=0))
        elif trans == 'T':
            return self._check_solution(spla.lu_solve((self.lu, self.piv), rhs, trans=1))
        else:
            raise TypeError("Only N or T transposition is possible")
