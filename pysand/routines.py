import warnings
from typing import Callable
import numpy as np

from .common.blockstate import BlockState, BLOCK_NAMES
from .common.domain import VoxelDomain
from .common.watchdog import WatchdogDriver
from .problem import Problem, SANDElasticity, traction_load


def finite_difference(problem: Problem, state: BlockState, barrier: float, dx: float = 1e-6, tol: float = 1e-5,
                      direction: BlockState = None, random: bool = True, rel_floor: float = 1e-3,
                      verbose: bool = True):
    r"""Performs a finite difference check of the Jacobian of a problem

    The directional derivative :math:`\mathbf{J}\mathbf{v}` is compared with the central difference
    :math:`(\mathbf{F}(\mathbf{x}+h\mathbf{v}) - \mathbf{F}(\mathbf{x}-h\mathbf{v}))/2h` for each block. When the problem
    has constraints, the Jacobian product is projected in the same way as the residual.

    Args:
        problem: The problem
        state: State to evaluate at; the slacks and their multipliers must stay positive under the perturbation
        barrier: Barrier value

    Keyword Args:
        dx: Perturbation size
        tol: Tolerance on the relative error per block
        direction: Perturbation direction (default is random or all ones)
        random: Randomize the perturbation direction
        rel_floor: Fraction of the largest derivative over all blocks, used as lower bound of the scale of the error
          of each block
        verbose: Print extra information to console

    Returns:
        Dictionary with the relative error of every block
    """
    if direction is None:
        direction = BlockState(state.sizes, np.random.rand(state.size) if random else np.ones(state.size))

    if verbose:
        print("\n" + "=" * 105)
        print(f'Starting finite difference of "{type(problem).__name__}" with dx = {dx}, and tol = {tol}')

    jacobian, _ = problem.assemble(state, barrier)
    dF_an = jacobian @ direction.values
    if problem.constraints is not None:
        dF_an = problem.constraints.project(dF_an)
    dF_an = BlockState(state.sizes, dF_an)

    res_p = problem.assemble_residual(state.axpy(dx, direction), barrier)
    res_m = problem.assemble_residual(state.axpy(-dx, direction), barrier)
    dF_fd = (res_p - res_m) / (2 * dx)

    # Blocks with a vanishing derivative are measured relative to the largest derivative of all blocks
    floor = max(rel_floor * max(dF_an.linfty_norm(), dF_fd.linfty_norm()), 1e-10)
    errors = dict()
    for name in BLOCK_NAMES:
        scale = max(dF_an.linfty_norm(name), dF_fd.linfty_norm(name), floor)
        errors[name] = (dF_an - dF_fd).linfty_norm(name) / scale
        if verbose:
            print(f"{name:32s} an: {dF_an.linfty_norm(name): .6e}  fd: {dF_fd.linfty_norm(name): .6e}  "
                  f"error: {errors[name]: .3e}")
        if errors[name] > tol:
            warnings.warn(f"Finite difference check of block '{name}' failed with error {errors[name]:.3e}")
    if verbose:
        print("=" * 105 + "\n")
    return errors


def make_bridge(refinements: int = 3, length: float = 6.0, height: float = 1.0, load_halfwidth: float = 0.3,
                traction=(0.0, -1.0), **kwargs):
    """Setup of the bridge benchmark

    The rectangular domain of ``length x height`` is meshed with square elements of size ``height/2^refinements``.
    A downward traction is applied on the top boundary around the center, the bottom-left corner is pinned and the
    bottom-right corner is supported in vertical direction.

    Args:
        refinements (optional): Number of uniform refinements of the unit element size
        length (optional): Length of the domain
        height (optional): Height of the domain
        load_halfwidth (optional): Half width of the loaded region at the center of the top boundary
        traction (optional): Traction vector
        **kwargs: Other options for :class:`SANDElasticity`

    Returns:
        The domain and the problem
    """
    h = height / 2 ** refinements
    nelx, nely = int(round(length / h)), 2 ** refinements
    domain = VoxelDomain(nelx, nely, unitx=h, unity=h)

    force = traction_load(domain, length / 2 - load_halfwidth, length / 2 + load_halfwidth, traction)

    left, right = domain.get_nodenumber(0, 0), domain.get_nodenumber(nelx, 0)
    fixed_dofs = np.concatenate([np.ravel(domain.get_dofnumber(left, [0, 1])), np.ravel(domain.get_dofnumber(right, 1))])
    return domain, SANDElasticity(domain, force, fixed_dofs, **kwargs)


def minimize_sand(problem: Problem, state: BlockState = None, callback: Callable = None,
                  final_callback: Callable = None, verbosity: int = 2, **kwargs):
    """Execute minimization using the primal-dual interior-point method with watchdog strategy

    Args:
        problem: The problem to solve
        state (optional): Initial state, by default the initial state of the problem

    Keyword Args:
        callback: Function ``callback(state, iteration)`` called for every accepted iterate
        final_callback: Function ``final_callback(state)`` called with the final state
        verbosity: 0 - No prints, 1 - Only convergence message, 2 - Convergence and iteration info, 3 - Watchdog info
        **kwargs: Options for :class:`WatchdogDriver`

    Returns:
        The final state and the driver, containing the iteration history
    """
    driver = WatchdogDriver(problem, callback=callback, final_callback=final_callback, verbosity=verbosity, **kwargs)
    state = driver.run(state)
    return state, driver
