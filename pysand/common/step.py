import numpy as np

from .blockstate import BlockState, DECISION_BLOCKS, EQUALITY_MULTIPLIER_BLOCKS, SLACK_BLOCKS, \
    SLACK_MULTIPLIER_BLOCKS, PRIMAL_BLOCKS, DUAL_BLOCKS
from ..solvers.solvers import LinearSolver, ConstrainedSolver
from ..solvers.sparse import SolverSparseLU


def fraction_to_boundary(barrier: float, min_fraction: float = 0.8, max_fraction: float = 0.99999):
    r"""Fraction-to-boundary factor :math:`\tau = \min(\max(1-b, \tau_\text{min}), \tau_\text{max})`

    The comparisons are strict: at :math:`1-b = \tau_\text{min}` the minimum is used, at :math:`1-b = \tau_\text{max}`
    the maximum.
    """
    if min_fraction < 1 - barrier:
        return 1 - barrier if 1 - barrier < max_fraction else max_fraction
    return min_fraction


class StepComputer:
    r"""Computes the scaled Newton step of the primal-dual interior-point method

    Each call to :meth:`find_max_step` assembles and solves the Newton system :math:`\mathbf{J}\Delta\mathbf{x} =
    -\mathbf{F}`, updates the penalty multiplier of the merit function and scales the step such that the slacks and
    their multipliers remain positive.

    Args:
        problem: The problem providing the Jacobian and residual

    Keyword Args:
        solver: Linear solver for the Newton system; wrapped with the constraints of the problem, if any
          (default :class:`SolverSparseLU`)
        initial_penalty_multiplier: Starting value of the (non-decreasing) penalty multiplier
        min_fraction_to_boundary: Lower bound of the fraction-to-boundary factor
        max_fraction_to_boundary: Upper bound of the fraction-to-boundary factor
        n_bisections: Number of bisections to find the maximum step lengths
        verbosity: Level of information to print, penalty updates are reported from level 3

    Attributes:
        penalty_multiplier: Current penalty multiplier
        last_step_lengths: The primal and dual step lengths of the last step
    """
    def __init__(self, problem,
                 solver: LinearSolver = None,
                 initial_penalty_multiplier: float = 1.0,
                 min_fraction_to_boundary: float = 0.8,
                 max_fraction_to_boundary: float = 0.99999,
                 n_bisections: int = 50,
                 verbosity: int = 0):
        self.problem = problem
        if solver is None:
            solver = SolverSparseLU()
        constraints = getattr(problem, "constraints", None)
        if constraints is not None and not isinstance(solver, ConstrainedSolver):
            solver = ConstrainedSolver(solver, constraints)
        self.solver = solver
        self.initial_penalty_multiplier = float(initial_penalty_multiplier)
        self.penalty_multiplier = self.initial_penalty_multiplier
        self.min_fraction_to_boundary = min_fraction_to_boundary
        self.max_fraction_to_boundary = max_fraction_to_boundary
        self.n_bisections = n_bisections
        self.verbosity = verbosity
        self.last_step_lengths = (None, None)

    def newton_step(self, state: BlockState, barrier: float):
        """Solve the full Newton system at ``state``

        Returns:
            The Jacobian, the residual, and the unscaled step

        Raises:
            numpy.linalg.LinAlgError: When the Newton system cannot be solved
        """
        jacobian, residual = self.problem.assemble(state, barrier)
        self.solver.update(jacobian)
        step = BlockState(state.sizes, self.solver.solve(-residual.values))
        return jacobian, residual, step

    def update_penalty_multiplier(self, jacobian, residual: BlockState, step: BlockState):
        r"""Increase the penalty multiplier if the model predicts the step is not a descent direction for the merit

        With the decision blocks :math:`d`, the test value is

        :math:`\nu = \frac{\mathbf{F}_d^\text{T}\Delta\mathbf{x}_d + \max(0, \frac{1}{2}\Delta\mathbf{x}_d^\text{T}
        \mathbf{J}_{dd}\Delta\mathbf{x}_d)}{0.05 \sum_c \|\mathbf{F}_c\|_\infty}`

        where :math:`c` are the equality multiplier blocks. Only values larger than the current multiplier are adopted.
        """
        step_d = np.zeros(step.size)
        for name in DECISION_BLOCKS:
            sl = step.block_slice(name)
            step_d[sl] = step.values[sl]
        hess_term = float(step_d @ (jacobian @ step_d))
        grad_term = residual.dot(step, DECISION_BLOCKS)  # Equals -rhs^T step, with rhs = -F
        cnorm = sum(residual.linfty_norm(name) for name in EQUALITY_MULTIPLIER_BLOCKS)
        if cnorm == 0:
            return self.penalty_multiplier

        test = (grad_term + max(0.0, 0.5 * hess_term)) / (0.05 * cnorm)
        if test > self.penalty_multiplier:
            if self.verbosity >= 3:
                print(f"  Penalty multiplier increased {self.penalty_multiplier:.4e} -> {test:.4e}")
            self.penalty_multiplier = test
        return self.penalty_multiplier

    def _max_length(self, state: BlockState, step: BlockState, blocks, tau: float):
        """Bisection for the largest length such that ``tau*state + length*step`` is non-negative on ``blocks``"""
        x = np.concatenate([state[n] for n in blocks])
        dx = np.concatenate([step[n] for n in blocks])
        low, high = 0.0, 1.0
        for _ in range(self.n_bisections):
            mid = (low + high) / 2
            if np.all(tau * x + mid * dx >= 0):
                low = mid
            else:
                high = mid
        return low

    def calculate_max_step_size(self, state: BlockState, step: BlockState, barrier: float):
        """Maximum step lengths that keep the slacks (primal) and their multipliers (dual) positive

        Returns:
            Tuple of primal and dual step length
        """
        tau = fraction_to_boundary(barrier, self.min_fraction_to_boundary, self.max_fraction_to_boundary)
        primal = self._max_length(state, step, SLACK_BLOCKS, tau)
        dual = self._max_length(state, step, SLACK_MULTIPLIER_BLOCKS, tau)
        return primal, dual

    def scale_step(self, step: BlockState, primal: float, dual: float):
        scaled = step.copy()
        for name in PRIMAL_BLOCKS:
            scaled[name] *= primal
        for name in DUAL_BLOCKS:
            scaled[name] *= dual
        return scaled

    def find_max_step(self, state: BlockState, barrier: float):
        """Newton step from ``state``, scaled by the maximum primal and dual step lengths

        Updates :attr:`penalty_multiplier` as side effect.
        """
        jacobian, residual, step = self.newton_step(state, barrier)
        self.update_penalty_multiplier(jacobian, residual, step)
        primal, dual = self.calculate_max_step_size(state, step, barrier)
        self.last_step_lengths = (primal, dual)
        return self.scale_step(step, primal, dual)
