import numpy as np
from .constraints import AffineConstraints


class LinearSolver:
    """ Base class of all linear solvers

    Keyword Args:
        A (matrix): Optionally provide a matrix, which is used in :method:`update` right away.

    Attributes:
        defined (bool): Flag if the solver is able to run, e.g. false if some dependent library is not available
    """

    defined = True
    _err_msg = ""

    def __init__(self, A=None):
        if A is not None:
            self.update(A)

    def update(self, A):
        """ Updates with a new matrix of the same structure

        Args:
            A (matrix): The new matrix of size ``(N, N)``

        Returns:
            self
        """
        raise NotImplementedError(f"Solver not implemented {self._err_msg}")

    def solve(self, rhs, x0=None, trans='N'):
        r""" Solves the linear system of equations :math:`\mathbf{A} \mathbf{x} = \mathbf{b}`

        Args:
            rhs: Right hand side :math:`\mathbf{b}` of shape ``(N)`` or ``(N, K)`` for multiple right-hand-sides
            x0 (optional): Initial guess for the solution
            trans (optional): Option to transpose matrix
                'N':   A   @ x == rhs   (default)   Normal matrix
                'T':   A^T @ x == rhs               Transposed matrix

        Returns:
            Solution vector :math:`\mathbf{x}` of same shape as :math:`\mathbf{b}`

        Raises:
            numpy.linalg.LinAlgError: If the system cannot be solved
        """
        raise NotImplementedError(f"Solver not implemented {self._err_msg}")

    @staticmethod
    def residual(A, x, b, trans='N'):
        r""" Calculates the (relative) residual of the linear system of equations

        The residual is calculated as
        :math:`r = \frac{\left| \mathbf{A} \mathbf{x} - \mathbf{b} \right|}{\left| \mathbf{b} \right|}`

        Args:
            A: The matrix
            x: Solution vector
            b: Right-hand side
            trans (optional): Matrix tranformation (`N` is normal, `T` is transposed)

        Returns:
            Residual value
        """
        assert x.shape == b.shape
        if trans == 'N':
            mat = A
        elif trans == 'T':
            mat = A.T
        else:
            raise TypeError("Only N or T transposition is possible")
        return np.linalg.norm(mat@x - b, axis=0) / np.linalg.norm(b, axis=0)

    @staticmethod
    def _check_solution(x):
        if not np.all(np.isfinite(x)):
            raise np.linalg.LinAlgError("Solution of the linear system contains non-finite values")
        return x


class ConstrainedSolver(LinearSolver):
    r""" Wraps a solver to enforce affine constraints :math:`\mathbf{x} = \mathbf{C}\mathbf{y}` on the solution

    The condensed system :math:`\mathbf{C}^\text{T}\mathbf{A}\mathbf{C}\mathbf{y} = \mathbf{C}^\text{T}\mathbf{b}` is
    solved by the internal solver, after which the solution is distributed to all degrees of freedom. Only homogeneous
    constraints are distributed, as the constrained quantities are Newton updates.

    Args:
        solver: The internal solver to be used
        constraints: The constraints
        A (optional): The matrix :math:`\mathbf{A}`
    """
    def __init__(self, solver: LinearSolver, constraints: AffineConstraints, A=None):
        self.solver = solver
        self.constraints = constraints
        self.A = None
        super().__init__(A)

    def update(self, A):
        """ Condense the matrix and update the internal ``solver`` """
        if A.shape != (self.constraints.n, self.constraints.n):
            raise ValueError(f"Matrix of shape {A.shape} does not match the constraints of size {self.constraints.n}")
        self.A = A
        self.solver.update(self.constraints.condense_matrix(A))
        return self

    def solve(self, rhs, x0=None, trans='N'):
        y0 = None if x0 is None else self.constraints.restrict(x0)
        y = self.solver.solve(self.constraints.condense_vector(rhs), x0=y0, trans=trans)
        return self._check_solution(self.constraints.distribute(y, homogeneous=True))
