from typing import Callable

from .blockstate import BlockState
from .step import StepComputer
from .merit import MeritFunction, LineSearch
from .barrier import ConvergenceChecker, BarrierSchedule

# Names of the ways an iterate can be accepted
WATCHDOG = "watchdog"
STRETCH = "stretch"
WATCHDOG_RESTART = "watchdog-restart"
STRETCH_RESTART = "stretch-restart"


class WatchdogDriver:
    r"""Primal-dual interior-point optimizer with barrier continuation and a watchdog globalization strategy

    For each barrier value, the inner loop takes up to ``max_uphill_steps`` full (fraction-to-boundary scaled) Newton
    steps without requiring any decrease of the merit function. As soon as the merit drops below the goal

    :math:`\phi_\text{goal} = \phi(\mathbf{x}_w) + \eta D\phi(\mathbf{x}_w; \Delta\mathbf{x}_w)`,

    with :math:`\mathbf{x}_w` and :math:`\Delta\mathbf{x}_w` the state and step at the start of the watchdog, the
    iterate is accepted. Otherwise, a line search provides a fallback:

    a. from the end of the watchdog, when the merit there is below the watchdog merit or the line search reaches the
       goal;
    b. from the start of the watchdog, when the line search from its end increased the merit;
    c. a new line search from the end of the first line search otherwise.

    When the KKT residual is below the tolerance, the barrier is reduced. The optimization ends when the barrier is at
    its minimum and the residual is converged, or when the iteration budget is spent.

    Args:
        problem: The problem to solve

    Keyword Args:
        solver: Linear solver for the Newton systems (see :class:`StepComputer`)
        initial_barrier: Starting barrier value
        min_barrier: Lower limit of the barrier
        max_iterations: Iteration budget
        max_uphill_steps: Maximum number of steps in the watchdog without decrease of the merit
        descent_requirement: Fraction of the predicted decrease required by the goal merit and line search
        callback: Function ``callback(state, iteration)`` called for every accepted iterate
        final_callback: Function ``final_callback(state)`` called with the final state
        verbosity: Level of information to print. Defaults to 2.
          0 - No prints
          1 - Only termination message
          2 - Iteration info and barrier reductions (default)
          3 - Additional info on the watchdog, line searches, and penalty multiplier
        **kwargs: Other options for :class:`StepComputer`, :class:`MeritFunction`, :class:`LineSearch`,
          :class:`ConvergenceChecker`, and :class:`BarrierSchedule`

    Attributes:
        barrier: Current barrier value
        iteration: Iteration count
        converged: Whether the last check of the KKT residual passed
        history: List with a dictionary of information for every accepted iterate
    """
    def __init__(self, problem,
                 solver=None,
                 initial_barrier: float = 25.0,
                 min_barrier: float = 5e-4,
                 max_iterations: int = 10000,
                 max_uphill_steps: int = 8,
                 descent_requirement: float = 1e-4,
                 callback: Callable = None,
                 final_callback: Callable = None,
                 verbosity: int = 2,
                 **kwargs):
        if initial_barrier <= 0:
            raise ValueError("Initial barrier must be positive")
        if max_uphill_steps < 1:
            raise ValueError("At least one uphill step is required")
        self.problem = problem
        self.initial_barrier = initial_barrier
        self.max_iterations = max_iterations
        self.max_uphill_steps = max_uphill_steps
        self.descent_requirement = descent_requirement
        self.callback = callback
        self.final_callback = final_callback
        self.verbosity = verbosity

        def pop_options(*names):
            return {n: kwargs.pop(n) for n in names if n in kwargs}

        self.step_computer = StepComputer(problem, solver=solver, verbosity=verbosity, **pop_options(
            'initial_penalty_multiplier', 'min_fraction_to_boundary', 'max_fraction_to_boundary', 'n_bisections'))
        self.merit = MeritFunction(problem, **pop_options('fd_perturbation'))
        self.line_search = LineSearch(self.merit, verbosity=verbosity, **pop_options('max_halvings'))
        self.convergence = ConvergenceChecker(problem, **pop_options('tolerance'))
        schedule = pop_options('barrier_multiplier', 'barrier_exponent')
        self.schedule = BarrierSchedule(min_barrier=min_barrier,
                                        multiplier=schedule.get('barrier_multiplier', 0.8),
                                        exponent=schedule.get('barrier_exponent', 1.2))
        if len(kwargs) > 0:
            raise TypeError(f"Unknown option(s) {sorted(kwargs.keys())}")

        self.barrier = initial_barrier
        self.iteration = 0
        self.converged = False
        self.history = []

    @property
    def penalty_multiplier(self):
        return self.step_computer.penalty_multiplier

    def _merit(self, state: BlockState):
        return self.merit(state, self.barrier, self.penalty_multiplier)

    def _scaled_step(self, state: BlockState, step: BlockState):
        return self.line_search.take_scaled_step(state, step, self.descent_requirement, self.barrier,
                                                 self.penalty_multiplier)

    def _watchdog(self, current: BlockState):
        """One pass of the watchdog; returns the accepted state and how it was obtained"""
        watchdog_state = current.copy()
        watchdog_step = None
        goal_merit = None
        for k in range(self.max_uphill_steps):
            step = self.step_computer.find_max_step(current, self.barrier)
            if k == 0:
                watchdog_step = step
            current = current + step
            current_merit = self._merit(current)
            goal_merit = self._merit(watchdog_state) + self.descent_requirement * self.merit.directional_derivative(
                watchdog_state, watchdog_step, self.barrier, self.penalty_multiplier)
            if self.verbosity >= 3:
                print(f"  Watchdog step {k + 1}: merit {current_merit: .6e}, goal {goal_merit: .6e}")
            if current_merit < goal_merit:
                self.iteration += k + 1
                return current, WATCHDOG

        step = self.step_computer.find_max_step(current, self.barrier)
        stretch_state = self._scaled_step(current, step)
        watchdog_merit = self._merit(watchdog_state)
        stretch_merit = self._merit(stretch_state)
        if self._merit(current) < watchdog_merit or stretch_merit < goal_merit:
            self.iteration += self.max_uphill_steps + 1
            branch, current = STRETCH, stretch_state
        elif stretch_merit > watchdog_merit:
            self.iteration += self.max_uphill_steps + 1
            branch, current = WATCHDOG_RESTART, self._scaled_step(watchdog_state, watchdog_step)
        else:
            stretch_step = self.step_computer.find_max_step(stretch_state, self.barrier)
            self.iteration += self.max_uphill_steps + 2
            branch, current = STRETCH_RESTART, self._scaled_step(stretch_state, stretch_step)
        if self.verbosity >= 3:
            print(f"  Watchdog failed, accepted {branch} step")
        return current, branch

    def _record(self, state: BlockState, branch: str, kkt_norm: float):
        info = dict(iteration=self.iteration, barrier=self.barrier, merit=self._merit(state),
                    objective=self.problem.objective(state), kkt_norm=kkt_norm,
                    penalty_multiplier=self.penalty_multiplier, branch=branch)
        self.history.append(info)
        if self.verbosity >= 2:
            print("It. {0: 5d}, f0 = {1: .6e}, merit = {2: .6e}, |F| = {3: .3e}, barrier = {4: .3e} ({5})".format(
                info['iteration'], info['objective'], info['merit'], kkt_norm, self.barrier, branch))
        if self.callback is not None:
            self.callback(state, self.iteration)

    def run(self, state: BlockState = None):
        """Run the optimization

        Args:
            state (optional): Initial state; defaults to the initial state of the problem. The barrier, iteration
              count, history and penalty multiplier start from their initial values on every call.

        Returns:
            The final state, which is the best available iterate when the iteration budget is spent

        Raises:
            numpy.linalg.LinAlgError: When a Newton system cannot be solved
        """
        current = self.problem.initial_state() if state is None else state.copy()
        self.barrier = self.initial_barrier
        self.iteration = 0
        self.history = []
        self.step_computer.penalty_multiplier = self.step_computer.initial_penalty_multiplier

        self.converged = self.convergence(current, self.barrier)
        while ((not self.schedule.at_floor(self.barrier) or not self.converged)
               and self.iteration < self.max_iterations):
            # Every barrier value takes at least one watchdog pass
            self.converged = False
            while not self.converged and self.iteration < self.max_iterations:
                current, branch = self._watchdog(current)
                kkt_norm = self.convergence.kkt_norm(current, self.barrier)
                self._record(current, branch, kkt_norm)
                self.converged = self.convergence.is_converged(kkt_norm, self.barrier)

            if not self.converged:
                break

            previous, self.barrier = self.barrier, self.schedule.update(self.barrier)
            if self.verbosity >= 2 and self.barrier < previous:
                print(f"Barrier reduced to {self.barrier:.4e} on iteration {self.iteration}")
            self.converged = self.convergence(current, self.barrier)

        if self.verbosity >= 1:
            if self.converged and self.schedule.at_floor(self.barrier):
                print(f"Interior-point method converged after {self.iteration} iterations "
                      f"(barrier = {self.barrier:.3e})")
            else:
                print(f"Interior-point method stopped: maximum number of iterations ({self.max_iterations}) reached "
                      f"(barrier = {self.barrier:.3e})")

        if self.final_callback is not None:
            self.final_callback(current)
        return current
