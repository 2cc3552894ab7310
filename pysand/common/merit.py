from .blockstate import BlockState, EQUALITY_MULTIPLIER_BLOCKS


class MeritFunction:
    r"""Exact :math:`\ell_1` merit function of the barrier subproblem

    :math:`\phi(\mathbf{x}) = f(\mathbf{x}) + \nu \sum_c \|\mathbf{F}_c(\mathbf{x}; b)\|_1`,

    where :math:`f` is the objective, :math:`\nu` the penalty multiplier and :math:`\mathbf{F}_c` the residual blocks
    of the equality constraints. The residual is assembled anew at every evaluation.

    Args:
        problem: The problem providing the objective and residual

    Keyword Args:
        fd_perturbation: Perturbation of the one-sided finite difference in :meth:`directional_derivative`
    """
    def __init__(self, problem, fd_perturbation: float = 1e-4):
        if fd_perturbation <= 0:
            raise ValueError("Finite difference perturbation must be positive")
        self.problem = problem
        self.fd_perturbation = fd_perturbation
        self.n_evaluations = 0

    def constraint_violation(self, state: BlockState, barrier: float):
        residual = self.problem.assemble_residual(state, barrier)
        return sum(residual.l1_norm(name) for name in EQUALITY_MULTIPLIER_BLOCKS)

    def __call__(self, state: BlockState, barrier: float, penalty_multiplier: float):
        self.n_evaluations += 1
        return self.problem.objective(state) + penalty_multiplier * self.constraint_violation(state, barrier)

    merit = __call__

    def directional_derivative(self, state: BlockState, step: BlockState, barrier: float, penalty_multiplier: float):
        """One-sided finite difference estimate of the merit derivative along ``step``"""
        h = self.fd_perturbation
        return (self(state.axpy(h, step), barrier, penalty_multiplier) - self(state, barrier, penalty_multiplier)) / h


class LineSearch:
    """Backtracking line search on the merit function

    Starting from the full step, the step length is halved until the sufficient decrease (Armijo) condition holds.
    When it does not hold after ``max_halvings`` halvings, the state at the last length is returned anyway.

    Args:
        merit: The merit function

    Keyword Args:
        max_halvings: Maximum number of halvings
        verbosity: Level of information to print, failed searches are reported from level 3

    Attributes:
        last_length: Step length of the last search
        last_search_succeeded: Whether the last search satisfied the decrease condition
    """
    def __init__(self, merit: MeritFunction, max_halvings: int = 10, verbosity: int = 0):
        self.merit = merit
        self.max_halvings = max_halvings
        self.verbosity = verbosity
        self.last_length = None
        self.last_search_succeeded = None

    def take_scaled_step(self, state: BlockState, step: BlockState, descent_requirement: float, barrier: float,
                         penalty_multiplier: float):
        """Returns ``state + length*step`` for the first length satisfying the sufficient decrease condition"""
        merit0 = self.merit(state, barrier, penalty_multiplier)
        length = 1.0
        for _ in range(self.max_halvings):
            derivative = self.merit.directional_derivative(state, step, barrier, penalty_multiplier)
            trial = state.axpy(length, step)
            if self.merit(trial, barrier, penalty_multiplier) < merit0 + length * descent_requirement * derivative:
                self.last_length, self.last_search_succeeded = length, True
                return trial
            length /= 2

        if self.verbosity >= 3:
            print(f"  Line search did not find sufficient decrease, using step length {length:.3e}")
        self.last_length, self.last_search_succeeded = length, False
        return state.axpy(length, step)
