"""Finite element assembly routines for linear elasticity on a :class:`VoxelDomain`"""
import numpy as np
import scipy.sparse as sps
from .common.domain import VoxelDomain


def get_B(dN_dx):
    """Gets the strain-displacement relation (Cook, eq 3.1-9, P.80)

      - 2D : [ε_x; ε_y; γ_xy]_i = B [u, v]_i
      - 3D : [ε_x; ε_y; ε_z; γ_yz; γ_zx; γ_xy]_i = B [u, v, w]_i (Voigt notation)

    Args:
        dN_dx: Shape function derivatives [dNi_dxj] of size (#dimensions x #shapefn.)

    Returns:
        B strain-displacement relation of size (#strains x #shapefn.*#dimensions)
    """
    n_dim, n_shapefn = dN_dx.shape
    n_strains = int((n_dim * (n_dim + 1)) / 2)  # Triangular number: ndim=3 -> nstrains = 3+2+1
    B = np.zeros((n_strains, n_shapefn * n_dim), dtype=dN_dx.dtype)
    for i in range(n_shapefn):
        dx = dN_dx[:, i]
        if n_dim == 2:
            B[:, i * 2:(i + 1) * 2] = [[dx[0], 0], [0, dx[1]], [dx[1], dx[0]]]
        elif n_dim == 3:
            B[:, i * 3:(i + 1) * 3] = [[dx[0], 0, 0], [0, dx[1], 0], [0, 0, dx[2]],
                                       [0, dx[2], dx[1]], [dx[2], 0, dx[0]], [dx[1], dx[0], 0]]
        else:
            raise ValueError(f"Only 2D and 3D are supported, got {n_dim}D")
    return B


def get_D(E: float, nu: float, mode: str = "strain"):
    """Get material constitutive relation for linear elasticity

    Args:
        E: Young's modulus
        nu: Poisson's ratio
        mode: Plane-``strain``, plane-``stress``, or ``3D``

    Returns:
        Material matrix
    """
    mu = E / (2 * (1 + nu))
    lam = (E * nu) / ((1 + nu) * (1 - 2 * nu))
    c1 = 2 * mu + lam
    if "strain" in mode.lower():
        return np.array([[c1, lam, 0], [lam, c1, 0], [0, 0, mu]])
    elif "stress" in mode.lower():
        a = E / (1 - nu * nu)
        return a * np.array([[1, nu, 0], [nu, 1, 0], [0, 0, (1 - nu) / 2]])
    elif "3d" in mode.lower():
        D = np.zeros((6, 6))
        D[:3, :3] = lam
        D[np.arange(3), np.arange(3)] = c1
        D[np.arange(3, 6), np.arange(3, 6)] = mu
        return D
    else:
        raise ValueError("Only for plane-stress, plane-strain, or 3d")


def lame_to_engineering(lame_lambda: float, lame_mu: float):
    """Convert Lamé parameters to Young's modulus and Poisson's ratio"""
    E = lame_mu * (3 * lame_lambda + 2 * lame_mu) / (lame_lambda + lame_mu)
    nu = lame_lambda / (2 * (lame_lambda + lame_mu))
    return E, nu


def element_stiffness(domain: VoxelDomain, e_modulus: float = 1.0, poisson_ratio: float = 0.3, plane="strain"):
    """Element stiffness matrix of a bilinear (2D) or trilinear (3D) voxel element, using 2-point Gauss quadrature in
    each direction. In 2D the thickness is given by ``domain.unitz``.
    """
    D = get_D(e_modulus, poisson_ratio, "3d" if domain.dim == 3 else plane.lower())
    ndof = domain.elemnodes * domain.dim
    KE = np.zeros((ndof, ndof))

    siz = domain.element_size
    w = np.prod(siz[: domain.dim] / 2)
    if domain.dim == 2:
        w *= domain.element_size[2]

    for n in domain.node_numbering:
        pos = n * (siz / 2) / np.sqrt(3)  # Gauss point
        B = get_B(domain.eval_shape_fun_der(pos))
        KE += w * B.T @ D @ B
    return KE


class AssembleStiffness:
    r"""Assembles the stiffness matrix scaled per element :math:`\mathbf{K} = \sum_e x_e \mathbf{K}_e`, together with
    the element-wise products needed for the derivatives with respect to :math:`\mathbf{x}`

    Args:
        domain: The domain to assemble for; this determines the element size and dimensionality

    Keyword Args:
        e_modulus (float, optional): Young's modulus. Defaults to 1.0.
        poisson_ratio (float, optional): Poisson's ratio. Defaults to 0.3.
        plane (str, optional): Plane `"strain"` or plane `"stress"`. Defaults to `"strain"`.
    """
    def __init__(self, domain: VoxelDomain, e_modulus: float = 1.0, poisson_ratio: float = 0.3, plane="strain"):
        self.domain = domain
        self.E, self.nu = e_modulus, poisson_ratio
        self.stiffness_element = element_stiffness(domain, e_modulus, poisson_ratio, plane)
        self.n = domain.dim * domain.nnodes
        self.dofconn = domain.get_dofconnectivity(domain.dim)

        nd = self.dofconn.shape[1]
        self.rows = np.repeat(self.dofconn, nd, axis=1).ravel()
        self.cols = np.tile(self.dofconn, (1, nd)).ravel()

    def __call__(self, x):
        """Assemble the scaled stiffness matrix in ``csc`` format"""
        x = np.asarray(x)
        if x.shape != (self.domain.nel,):
            raise ValueError(f"Scaling vector should be of size {self.domain.nel}, got {x.shape}")
        vals = (x[:, None, None] * self.stiffness_element[None, :, :]).ravel()
        return sps.coo_matrix((vals, (self.rows, self.cols)), shape=(self.n, self.n)).tocsc()

    def element_products(self, u, v):
        r"""Element-wise products :math:`\mathbf{u}_e^\text{T}\mathbf{K}_e\mathbf{v}_e` of size ``(nel, )``"""
        return np.einsum('ei,ij,ej->e', u[self.dofconn], self.stiffness_element, v[self.dofconn])

    def element_vectors(self, v, scaling=None):
        r"""Sparse matrix of size ``(n, nel)`` whose columns are the (scaled) element forces
        :math:`x_e\mathbf{K}_e\mathbf{v}_e`"""
        fe = v[self.dofconn] @ self.stiffness_element.T
        if scaling is not None:
            fe = fe * np.asarray(scaling)[:, None]
        els = np.repeat(np.arange(self.domain.nel), self.dofconn.shape[1])
        return sps.coo_matrix((fe.ravel(), (self.dofconn.ravel(), els)), shape=(self.n, self.domain.nel)).tocsc()


def assemble_face_load(domain: VoxelDomain, face_nodes: np.ndarray, traction) -> np.ndarray:
    """Consistent nodal load vector of a uniform traction on 2D boundary faces

    Args:
        domain: The domain
        face_nodes: Global node numbers of each face, of shape ``(#faces, 2)``
        traction: Traction vector ``(tx, ty)``

    Returns:
        Nodal load vector of size ``(2*nnodes, )``
    """
    if domain.dim != 2:
        raise NotImplementedError("Face loads are only implemented for 2D domains")
    face_nodes = np.atleast_2d(face_nodes)
    traction = np.asarray(traction, dtype=float)
    f = np.zeros(domain.dim * domain.nnodes)
    if face_nodes.size == 0:
        return f
    x = domain.get_node_position(face_nodes)  # (2, #faces, 2)
    lengths = np.linalg.norm(x[:, :, 1] - x[:, :, 0], axis=0) * domain.unitz
    for k in range(domain.dim):
        # Linear basis on the face integrates to half the face length for each node
        np.add.at(f, domain.get_dofnumber(face_nodes, k), 0.5 * lengths[:, None] * traction[k])
    return f
