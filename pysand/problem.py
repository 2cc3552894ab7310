"""Optimization problems solved by the interior-point driver"""
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np
import scipy.sparse as sps

from .common.blockstate import BlockState, BLOCK_NAMES, SLACK_BLOCKS, SLACK_MULTIPLIER_BLOCKS
from .common.domain import VoxelDomain
from .assembly import AssembleStiffness, assemble_face_load
from .filter import density_filter_matrix
from .solvers.constraints import AffineConstraints


class Problem(ABC):
    r"""Interface of a barrier-relaxed nonlinear program as seen by the interior-point driver

    A problem defines the KKT residual :math:`\mathbf{F}(\mathbf{x}; b)` of its barrier subproblem and the Jacobian
    :math:`\mathbf{J} = \partial\mathbf{F}/\partial\mathbf{x}`, such that the Newton step follows from
    :math:`\mathbf{J}\Delta\mathbf{x} = -\mathbf{F}`. Both are deterministic functions of the state and barrier.

    Attributes:
        constraints: Optional affine constraints on the Newton step (e.g. Dirichlet conditions)
    """
    constraints: AffineConstraints = None

    @property
    @abstractmethod
    def block_sizes(self) -> Tuple[int, ...]:
        """Number of entries in each of the nine state blocks"""
        raise NotImplementedError()

    @abstractmethod
    def initial_state(self) -> BlockState:
        raise NotImplementedError()

    @abstractmethod
    def assemble(self, state: BlockState, barrier: float) -> Tuple[sps.spmatrix, BlockState]:
        """Assemble the Jacobian and the KKT residual

        Args:
            state: The current state
            barrier: The barrier parameter

        Returns:
            Sparse Jacobian of size ``(n, n)`` and the residual
        """
        raise NotImplementedError()

    @abstractmethod
    def assemble_residual(self, state: BlockState, barrier: float) -> BlockState:
        """Assemble only the KKT residual, consistent with :meth:`assemble`"""
        raise NotImplementedError()

    @abstractmethod
    def objective(self, state: BlockState) -> float:
        """The objective, a linear functional of the displacement block"""
        raise NotImplementedError()

    def zeros(self):
        return BlockState(self.block_sizes)


def traction_load(domain: VoxelDomain, xmin: float, xmax: float, traction=(0.0, -1.0)):
    """Nodal load vector of a uniform traction on the top faces of a 2D domain whose centers lie in ``(xmin, xmax)``
    """
    _, faces = domain.get_boundary_faces('top')
    xc = np.mean(domain.get_node_position(faces)[0], axis=-1)
    loaded = (xc > xmin) & (xc < xmax)
    return assemble_face_load(domain, faces[loaded], traction)


class SANDElasticity(Problem):
    r"""Simultaneous analysis and design (SAND) formulation of compliance minimization with a SIMP material model

    The densities :math:`\boldsymbol{\rho}` and displacements :math:`\mathbf{u}` are both optimization variables. The
    barrier subproblem reads

    .. math::
        \min_{\boldsymbol{\rho}, \mathbf{u}, \boldsymbol{\sigma}, \mathbf{s}_l, \mathbf{s}_u}
        \quad & \mathbf{f}^\text{T}\mathbf{u} - b \sum_e A (\log s_{l,e} + \log s_{u,e}) \\
        \text{s.t.} \quad & \mathbf{K}(\boldsymbol{\rho})\mathbf{u} = \mathbf{f}, \\
        & \boldsymbol{\rho} = \mathbf{H}\boldsymbol{\sigma}, \quad
          \boldsymbol{\sigma} = \mathbf{s}_l, \quad \boldsymbol{\sigma} + \mathbf{s}_u = \mathbf{1},

    with :math:`\mathbf{K}(\boldsymbol{\rho}) = \sum_e \rho_e^p \mathbf{K}_e`, filter matrix :math:`\mathbf{H}` and
    element area :math:`A`. The multipliers of the four equality constraints are the displacement multiplier
    :math:`\boldsymbol{\lambda}`, the unfiltered density multiplier :math:`\mathbf{m}` and the slack multipliers
    :math:`\mathbf{z}_l` and :math:`\mathbf{z}_u`. The Jacobian uses the primal-dual form :math:`A z/s` for the
    slack-slack blocks.

    Dirichlet conditions are imposed on both the displacements and their multipliers. Optionally, the total material
    volume is kept fixed by constraining the last density to minus the sum of all other densities in the step.

    Args:
        domain: The 2D (or 3D) voxel domain
        force: Nodal load vector of size ``(dim*nnodes, )``
        fixed_dofs: Displacement dofs with a homogeneous Dirichlet condition

    Keyword Args:
        density_ratio: Initial (and average) density
        penalty_exponent: SIMP penalty exponent :math:`p`
        filter_radius: Density filter radius in physical units
        e_modulus: Young's modulus of the solid material
        poisson_ratio: Poisson's ratio of the solid material
        plane: Plane `"strain"` or plane `"stress"` (2D only)
        slack_multiplier: Initial value of the slack multipliers
        volume_constraint: Keep the total volume fixed
    """
    def __init__(self, domain: VoxelDomain, force: np.ndarray, fixed_dofs,
                 density_ratio: float = 0.5,
                 penalty_exponent: float = 3.0,
                 filter_radius: float = 0.251,
                 e_modulus: float = 2.5,
                 poisson_ratio: float = 0.25,
                 plane: str = "strain",
                 slack_multiplier: float = 50.0,
                 volume_constraint: bool = True):
        if not 0 < density_ratio < 1:
            raise ValueError(f"Density ratio must be between 0 and 1, got {density_ratio}")
        self.domain = domain
        self.density_ratio = density_ratio
        self.penalty_exponent = penalty_exponent
        self.slack_multiplier = slack_multiplier
        self.cell_measure = domain.element_volume

        self.stiffness = AssembleStiffness(domain, e_modulus=e_modulus, poisson_ratio=poisson_ratio, plane=plane)
        self.force = np.asarray(force, dtype=float).ravel()
        if self.force.size != self.stiffness.n:
            raise ValueError(f"Force vector should be of size {self.stiffness.n}, got {self.force.size}")
        self.filter = density_filter_matrix(domain, filter_radius)

        nel, ndof = domain.nel, self.stiffness.n
        self._block_sizes = tuple(ndof if n in ("displacement", "displacement_multiplier") else nel
                                  for n in BLOCK_NAMES)

        # Constraints on the Newton step in terms of the global dof numbering
        layout = BlockState(self._block_sizes)
        self.constraints = AffineConstraints(layout.size)
        fixed_dofs = np.unique(np.asarray(fixed_dofs, dtype=int).ravel())
        if fixed_dofs.size > 0 and (fixed_dofs.min() < 0 or fixed_dofs.max() >= ndof):
            raise ValueError("Fixed dofs out of range")
        self.fixed_dofs = fixed_dofs
        for block in ("displacement", "displacement_multiplier"):
            self.constraints.add_dirichlet(layout.block_slice(block).start + fixed_dofs)
        if volume_constraint:
            rho = np.arange(layout.block_slice("density").start, layout.block_slice("density").stop)
            self.constraints.add_line(rho[-1], [(j, -1.0) for j in rho[:-1]])
        self.constraints.close()

    @property
    def block_sizes(self):
        return self._block_sizes

    def initial_state(self):
        state = self.zeros()
        for name in ("density", "unfiltered_density", "unfiltered_density_multiplier", "density_lower_slack"):
            state[name] = self.density_ratio
        state["density_upper_slack"] = 1 - self.density_ratio
        for name in SLACK_MULTIPLIER_BLOCKS:
            state[name] = self.slack_multiplier
        return state

    def _check_interior(self, state: BlockState):
        if state.sizes != self._block_sizes:
            raise ValueError(f"State block sizes {state.sizes} do not match the problem {self._block_sizes}")
        for name in SLACK_BLOCKS + SLACK_MULTIPLIER_BLOCKS:
            if not state.is_positive(name):
                raise ValueError(f"Block '{name}' has non-positive entries; the state left the interior")

    def objective(self, state: BlockState):
        return float(self.force @ state["displacement"])

    def _residual(self, state: BlockState, barrier: float):
        A, p, H = self.cell_measure, self.penalty_exponent, self.filter
        rho, u, lam = state["density"], state["displacement"], state["displacement_multiplier"]
        sigma, m = state["unfiltered_density"], state["unfiltered_density_multiplier"]
        sl, zl = state["density_lower_slack"], state["density_lower_slack_multiplier"]
        su, zu = state["density_upper_slack"], state["density_upper_slack_multiplier"]

        K = self.stiffness(rho ** p)
        res = self.zeros()
        res["density"] = p * rho ** (p - 1) * self.stiffness.element_products(lam, u) - A * m
        res["displacement"] = K @ lam + self.force
        res["unfiltered_density"] = A * (H.T @ m + zu - zl)
        res["displacement_multiplier"] = K @ u - self.force
        res["unfiltered_density_multiplier"] = A * (H @ sigma - rho)
        res["density_lower_slack"] = A * (zl - barrier / sl)
        res["density_lower_slack_multiplier"] = A * (sl - sigma)
        res["density_upper_slack"] = A * (zu - barrier / su)
        res["density_upper_slack_multiplier"] = A * (sigma + su - 1)
        res.values = self.constraints.project(res.values)
        return K, res

    def assemble_residual(self, state: BlockState, barrier: float):
        self._check_interior(state)
        _, res = self._residual(state, barrier)
        return res

    def assemble(self, state: BlockState, barrier: float):
        self._check_interior(state)
        K, res = self._residual(state, barrier)

        A, p = self.cell_measure, self.penalty_exponent
        rho, u, lam = state["density"], state["displacement"], state["displacement_multiplier"]
        sl, zl = state["density_lower_slack"], state["density_lower_slack_multiplier"]
        su, zu = state["density_upper_slack"], state["density_upper_slack_multiplier"]
        nel = self.domain.nel
        eye = sps.identity(nel, format="csc")

        dK_lam = self.stiffness.element_vectors(lam, p * rho ** (p - 1))  # d(K lam)/d rho
        dK_u = self.stiffness.element_vectors(u, p * rho ** (p - 1))  # d(K u)/d rho
        d2 = sps.diags(p * (p - 1) * rho ** (p - 2) * self.stiffness.element_products(lam, u))

        idx = {n: i for i, n in enumerate(BLOCK_NAMES)}
        blocks = [[None for _ in BLOCK_NAMES] for _ in BLOCK_NAMES]

        def put(row, col, mat, symmetric=True):
            blocks[idx[row]][idx[col]] = mat
            if symmetric and row != col:
                blocks[idx[col]][idx[row]] = mat.T

        put("density", "density", d2)
        put("displacement", "density", dK_lam)
        put("displacement_multiplier", "density", dK_u)
        put("unfiltered_density_multiplier", "density", -A * eye)
        put("displacement_multiplier", "displacement", K)
        put("unfiltered_density_multiplier", "unfiltered_density", A * self.filter)
        put("density_lower_slack_multiplier", "unfiltered_density", -A * eye)
        put("density_upper_slack_multiplier", "unfiltered_density", A * eye)
        put("density_lower_slack", "density_lower_slack", sps.diags(A * zl / sl))
        put("density_lower_slack_multiplier", "density_lower_slack", A * eye)
        put("density_upper_slack", "density_upper_slack", sps.diags(A * zu / su))
        put("density_upper_slack_multiplier", "density_upper_slack", A * eye)

        J = sps.bmat(blocks, format="csc")
        return J, res
