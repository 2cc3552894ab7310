from .blockstate import BlockState


class ConvergenceChecker:
    r"""Checks whether the KKT residual of the barrier subproblem is small enough to reduce the barrier

    Converged when :math:`\|\mathbf{F}(\mathbf{x}; b)\|_1 < \text{tol} \cdot b` (strict inequality).

    Args:
        problem: The problem providing the residual

    Keyword Args:
        tolerance: Relative tolerance with respect to the barrier
    """
    def __init__(self, problem, tolerance: float = 1e-2):
        if tolerance <= 0:
            raise ValueError("Tolerance must be positive")
        self.problem = problem
        self.tolerance = tolerance

    def kkt_norm(self, state: BlockState, barrier: float):
        """The l1-norm of the full KKT residual"""
        return self.problem.assemble_residual(state, barrier).l1_norm()

    def is_converged(self, residual_norm: float, barrier: float):
        return residual_norm < self.tolerance * barrier

    def converged(self, state: BlockState, barrier: float):
        return self.is_converged(self.kkt_norm(state, barrier), barrier)

    __call__ = converged


class BarrierSchedule:
    r"""Barrier reduction :math:`b \leftarrow \max(\min(\kappa b, b^\theta), b_\text{min})`

    The linear rate :math:`\kappa` dominates for large barriers, the superlinear rate :math:`\theta` for small ones.

    Keyword Args:
        min_barrier: Lower limit of the barrier
        multiplier: Linear reduction factor :math:`\kappa`
        exponent: Superlinear reduction exponent :math:`\theta`
    """
    def __init__(self, min_barrier: float = 5e-4, multiplier: float = 0.8, exponent: float = 1.2):
        if min_barrier <= 0:
            raise ValueError("Minimum barrier must be positive")
        if not 0 < multiplier < 1 or exponent <= 1:
            raise ValueError("Barrier reduction requires 0 < multiplier < 1 and exponent > 1")
        self.min_barrier = min_barrier
        self.multiplier = multiplier
        self.exponent = exponent

    def update(self, barrier: float):
        if self.multiplier * barrier < barrier ** self.exponent:
            barrier = self.multiplier * barrier
        else:
            barrier = barrier ** self.exponent
        return max(barrier, self.min_barrier)

    def at_floor(self, barrier: float):
        return barrier <= self.min_barrier
