from .solvers import LinearSolver, ConstrainedSolver
from .constraints import AffineConstraints
from .matrix_checks import matrix_is_complex, matrix_is_sparse, matrix_is_symmetric, matrix_is_finite
from .dense import SolverDenseLU
from .sparse import SolverSparseLU

__all__ = ['matrix_is_complex', 'matrix_is_sparse', 'matrix_is_symmetric', 'matrix_is_finite',
           'LinearSolver', 'ConstrainedSolver', 'AffineConstraints',
           'SolverDenseLU', 'SolverSparseLU',
           ]
