import os
import sys
import base64
import struct
import warnings
from typing import Union, Iterable

from numpy.typing import NDArray
import numpy as np
from matplotlib.patches import PathPatch
from matplotlib.path import Path


def get_path(x, y):
    """ Closed matplotlib path around a quadrilateral with nodes in domain numbering """
    codes, verts = zip(
        *[
            (Path.MOVETO, [x[0], y[0]]),
            (Path.LINETO, [x[1], y[1]]),
            (Path.LINETO, [x[3], y[3]]),
            (Path.LINETO, [x[2], y[2]]),
            (Path.CLOSEPOLY, [x[0], y[0]]),
        ]
    )
    return Path(verts, codes)


IndexType = Union[int, Iterable[int], NDArray[np.integer]]


class VoxelDomain:
    r""" Definition for a structured voxel domain, used for both the displacement field (bilinear or trilinear nodal
    basis) and the densities (one value per element).

    Nodal numbering used in the domain is given below.

    Quadrangle in 2D

    ::

              ^
              | y
        2 -------- 3
        |     |    |   x
        |      --- | ---->
        |          |
        0 -------- 1

    Hexahedron in 3D

    ::

               y
        2----------3
        |\     ^   |\
        | \    |   | \
        |  \   |   |  \
        |   6------+---7
        |   |  +-- |-- | -> x
        0---+---\--1   |
         \  |    \  \  |
          \ |     \  \ |
           \|      z  \|
            4----------5

    Attributes:
        dim : Dimensionality of the object
        nel : Total number of elements
        nnodes : Total number of nodes
        elemnodes : Number of nodes per element
        node_numbering : The numbering scheme used to number the nodes in each element
        conn : Connectivity matrix of size (# elements, # nodes per element)
        elements : Helper array for element slicing of size (nelx, nely, nelz)
        nodes : Helper array for node slicing of size (nelx+1, nely+1, nelz+1)
    """

    def __init__(self, nelx: int, nely: int, nelz: int = 0, unitx: float = 1.0, unity: float = 1.0, unitz: float = 1.0):
        """Create a 2D or 3D voxel domain

        Args:
            nelx (int): Number of elements in x-direction
            nely (int): Number of elements in y-direction
            nelz (int, optional): Number of elements in z-direction; if zero it is a 2D domain. Defaults to 0.
            unitx (float, optional): Element size in x-direction. Defaults to 1.0.
            unity (float, optional): Element size in y-direction. Defaults to 1.0.
            unitz (float, optional): Element size in z-direction (thickness in 2D). Defaults to 1.0.
        """
        if nelx < 1 or nely < 1 or nelz < 0:
            raise ValueError(f"Invalid number of elements ({nelx}, {nely}, {nelz})")
        self.nelx, self.nely, self.nelz = int(nelx), int(nely), int(nelz)
        self.dim = 2 if self.nelz == 0 else 3

        self.origin = np.array([0.0, 0.0, 0.0])
        self.unitx, self.unity, self.unitz = unitx, unity, unitz
        if np.prod(self.element_size[: self.dim]) <= 0.0:
            raise ValueError("Element volume needs to be positive")

        self.nel = self.nelx * self.nely * max(self.nelz, 1)
        self.nnodes = (self.nelx + 1) * (self.nely + 1) * (self.nelz + 1)
        self.elemnodes = 2**self.dim

        # Local node i sits at the corner given by the signs in node_numbering[i]
        self.node_numbering = [[-1, -1, -1], [+1, -1, -1], [-1, +1, -1], [+1, +1, -1],
                               [-1, -1, +1], [+1, -1, +1], [-1, +1, +1], [+1, +1, +1]][: self.elemnodes]

        eli, elj, elk = np.meshgrid(
            np.arange(self.nelx), np.arange(self.nely), np.arange(max(self.nelz, 1)), indexing="ij"
        )
        self.elements = self.get_elemnumber(eli, elj, elk)

        self.conn = np.zeros((self.nel, self.elemnodes), dtype=int)
        self.conn[self.elements.ravel(), :] = self.get_elemconnectivity(eli.ravel(), elj.ravel(), elk.ravel())

        ndi, ndj, ndk = np.meshgrid(
            np.arange(self.nelx + 1), np.arange(self.nely + 1), np.arange(self.nelz + 1), indexing="ij"
        )
        self.nodes = self.get_nodenumber(ndi, ndj, ndk)

    @property
    def element_size(self):
        """Element size in each direction"""
        return np.array([self.unitx, self.unity, self.unitz])

    @property
    def element_volume(self):
        """Area (2D) or volume (3D) of one element"""
        return float(np.prod(self.element_size[: self.dim]))

    @property
    def domain_size(self):
        """Domain size in each direction"""
        return np.array([self.nelx * self.unitx, self.nely * self.unity, self.nelz * self.unitz])[: self.dim]

    @property
    def size(self):
        """Number of elements in each direction"""
        return np.array([self.nelx, self.nely, self.nelz])[: self.dim]

    def get_elemnumber(self, eli: IndexType, elj: IndexType, elk: IndexType = 0):
        """Gets the element number(s) for element(s) with given Cartesian indices (i, j, k)"""
        return (elk * self.nely + elj) * self.nelx + eli

    def get_nodenumber(self, nodi: IndexType, nodj: IndexType, nodk: IndexType = 0):
        """Gets the node number(s) for nodes with given Cartesian indices (i, j, k)"""
        return (nodk * (self.nely + 1) + nodj) * (self.nelx + 1) + nodi

    def get_dofnumber(self, nod_idx: IndexType, dof_idx: IndexType = None, ndof: int = None):
        """Gets the degree of freedom number(s) for node(s) with given node number(s)

        Args:
            nod_idx : Node number; can be integer or array
            dof_idx (optional) : Dof index to request (e.g. `0` for x, `[0, 1]` for x and y) (default is all dofs)
            ndof (optional) : Number of degrees of freedom per node (default is `domain.dim`)

        Returns:
            The dof number(s) of shape ``(*nod_idx.shape, *dof_idx.shape)``
        """
        if ndof is None:
            ndof = self.dim
        if dof_idx is None:
            dof_idx = np.arange(ndof)
        nod_idx, dof_idx = np.asarray(nod_idx), np.asarray(dof_idx)
        if np.any(dof_idx >= ndof):
            raise ValueError(f"Dof index out of range for {ndof} dofs per node")
        return nod_idx[(...,) + (None,) * dof_idx.ndim] * ndof + dof_idx

    def get_elem_indices(self, el_idx: IndexType = None):
        """Gets the Cartesian index (i, j[, k]) for given element number(s)"""
        if el_idx is None:
            el_idx = np.arange(self.nel)
        el_idx = np.asarray(el_idx)
        eli = el_idx % self.nelx
        elj = (el_idx // self.nelx) % self.nely
        if self.dim == 2:
            return np.stack([eli, elj], axis=0)
        return np.stack([eli, elj, el_idx // (self.nelx * self.nely)], axis=0)

    def get_node_indices(self, nod_idx: IndexType = None):
        """Gets the Cartesian index (i, j[, k]) for given node number(s)"""
        if nod_idx is None:
            nod_idx = np.arange(self.nnodes)
        nod_idx = np.asarray(nod_idx)
        nodi = nod_idx % (self.nelx + 1)
        nodj = (nod_idx // (self.nelx + 1)) % (self.nely + 1)
        if self.dim == 2:
            return np.stack([nodi, nodj], axis=0)
        return np.stack([nodi, nodj, nod_idx // ((self.nelx + 1) * (self.nely + 1))], axis=0)

    def get_node_position(self, nod_idx: IndexType = None):
        """Physical coordinates of the node(s), of shape ``(dim, *nod_idx.shape)``"""
        ijk = self.get_node_indices(nod_idx)
        return (self.origin[: self.dim] + self.element_size[: self.dim] * ijk.T).T

    def get_element_centers(self, el_idx: IndexType = None):
        """Physical coordinates of the element center(s), of shape ``(dim, *el_idx.shape)``"""
        ijk = self.get_elem_indices(el_idx)
        return (self.origin[: self.dim] + self.element_size[: self.dim] * (ijk.T + 0.5)).T

    def get_elemconnectivity(self, i: IndexType, j: IndexType, k: IndexType = 0):
        """Node numbers of the element(s) with Cartesian indices (i, j, k), of size (# elements, # nodes per element)
        """
        nods = [self.get_nodenumber(i + max(n[0], 0), j + max(n[1], 0), k + max(n[2], 0)) for n in self.node_numbering]
        return np.stack(nods, axis=-1)

    def get_dofconnectivity(self, ndof: int):
        """Dof numbers of each element, of size (# total elements, # dofs per element)"""
        return np.reshape(self.get_dofnumber(self.conn, ndof=ndof), (self.conn.shape[0], -1))

    def get_boundary_faces(self, side: str):
        """Elements and local node pairs on one side of a 2D domain

        Args:
            side: One of ``'left'``, ``'right'``, ``'bottom'``, or ``'top'``

        Returns:
            Tuple of element numbers and the global node numbers of each face, of shape ``(#faces, 2)``
        """
        if self.dim != 2:
            raise NotImplementedError("Boundary faces are only implemented for 2D domains")
        if side == 'left':
            els, loc = self.elements[0, :, 0], [0, 2]
        elif side == 'right':
            els, loc = self.elements[-1, :, 0], [1, 3]
        elif side == 'bottom':
            els, loc = self.elements[:, 0, 0], [0, 1]
        elif side == 'top':
            els, loc = self.elements[:, -1, 0], [2, 3]
        else:
            raise ValueError(f"Unknown side '{side}'")
        return els, self.conn[els][:, loc]

    def eval_shape_fun(self, pos: np.ndarray):
        r"""Evaluate the linear shape functions of the finite element

        In 2D [1]
        .. math::
            N_1(x,y) = \frac{1}{A} \left(\frac{w}{2} - x\right) \left(\frac{h}{2} - y\right)

            N_2(x,y) = \frac{1}{A} \left(\frac{w}{2} + x\right) \left(\frac{h}{2} - y\right)

            \dotsc

        with :math:`A = wh`

        Args:
            pos : Evaluation coordinates [x, y, z (optional)] within bounds of [-element_size/2, element_size/2]

        Returns:
            Array of evaluated shape functions [N1(x), N2(x), ...]

        References:
            [1] Cook, et al. (2002). Concepts and applications of finite element analysis (4th ed.), eq. (6.2-3)
        """
        shapefn = np.ones(self.elemnodes) / self.element_volume
        for i in range(self.dim):
            shapefn *= np.array([self.element_size[i] / 2 + n[i] * pos[i] for n in self.node_numbering])
        return shapefn

    def eval_shape_fun_der(self, pos: np.ndarray):
        """Evaluates the shape function derivatives in x, y, and optionally z-direction.

        Args:
            pos : Evaluation coordinates [x, y, z(optional)] within bounds of [-element_size/2, element_size/2]

        Returns:
            Shape function derivatives of size (#dimensions, #shape functions)
        """
        dN_dx = np.ones((self.dim, self.elemnodes)) / self.element_volume
        for i in range(self.dim):
            for j in range(self.dim):
                if i != j:
                    dN_dx[i, :] *= np.array([self.element_size[j] / 2 + n[j] * pos[j] for n in self.node_numbering])
            dN_dx[i, :] *= np.array([n[i] for n in self.node_numbering])
        return dN_dx

    def plot(self, ax, deformation=None, scaling=None):
        """Draw every element as a grey patch, shaded by ``scaling`` (e.g. density) and displaced by ``deformation``"""
        patches = []
        for e in range(self.nel):
            patch = PathPatch(self._element_path(e, deformation), linewidth=0.1, color=self._element_color(e, scaling))
            ax.add_artist(patch)
            patches.append(patch)
        ax.set_xlim(self.origin[0], self.origin[0] + self.domain_size[0])
        ax.set_ylim(self.origin[1], self.origin[1] + self.domain_size[1])
        ax.set_aspect('equal')
        return patches

    def update_plot(self, patches, deformation=None, scaling=None):
        for e, patch in enumerate(patches):
            patch.set_color(self._element_color(e, scaling))
            patch.set_path(self._element_path(e, deformation))

    def _element_path(self, e, deformation=None):
        n = self.conn[e]
        x, y = self.get_node_position(n)
        if deformation is not None:
            x, y = x + deformation[n * 2], y + deformation[n * 2 + 1]
        return get_path(x, y)

    @staticmethod
    def _element_color(e, scaling=None):
        if scaling is None:
            return "grey"
        c = float(np.clip(1 - scaling[e], 0, 1))
        return (c, c, c)

    def write_to_vti(self, vectors: dict, filename="out.vti", scale=1.0):
        """Write all given vectors to a Paraview (VTI) file

        The size of the vectors should be a multiple of ``nel`` or ``nnodes``. Based on their size they are marked as
        cell-data or point-data in the VTI file. For 2D nodal vectors (size is equal to ``2*nnodes``), the z-dimension
        is padded with zeros to have 3-dimensional data, which enables the warp filter in Paraview.

        Args:
            vectors: A dictionary of vectors to write. Keys are used as vector names.
            filename (str): The file loction
            scale: Uniform scaling of the gridpoints
        """
        if os.path.splitext(filename)[-1].lower() != ".vti":
            filename += ".vti"

        point_dat, cell_dat = {}, {}
        for key, vec in vectors.items():
            vec = np.asarray(vec).ravel()
            if vec.size > 0 and vec.size % self.nel == 0:
                cell_dat[key] = vec
            elif vec.size > 0 and vec.size % self.nnodes == 0:
                point_dat[key] = vec
            else:
                warnings.warn(f"Vector {key} is neither cell- nor point-data. Skipping vector...")

        if len(point_dat) == 0 and len(cell_dat) == 0:
            warnings.warn(f"Nothing to write to {filename}. Skipping file...")
            return

        byte_order = "LittleEndian" if sys.byteorder == "little" else "BigEndian"
        extent = f"0 {self.nelx} 0 {self.nely} 0 {self.nelz}"
        ox, oy, oz = self.origin * scale
        dx, dy, dz = self.element_size * scale
        with open(filename, "wb") as file:
            file.write(b'<?xml version="1.0"?>\n')
            file.write(
                f'<VTKFile type="ImageData" version="0.1" header_type="UInt64" byte_order="{byte_order}">\n'.encode()
            )
            file.write(f'<ImageData WholeExtent="{extent}" Origin="{ox} {oy} {oz}" Spacing="{dx} {dy} {dz}">\n'
                       .encode())
            file.write(f'<Piece Extent="{extent}">\n'.encode())

            if len(point_dat) > 0:
                file.write(b"<PointData>\n")
                for key, vec in point_dat.items():
                    ncomponents = vec.size // self.nnodes
                    if ncomponents == 2 and self.dim == 2:
                        vec_pad = np.zeros(3 * self.nnodes)
                        vec_pad[0::3], vec_pad[1::3] = vec[0::2], vec[1::2]
                        vec, ncomponents = vec_pad, 3
                    self._write_data_array(file, key, vec, ncomponents)
                file.write(b"</PointData>\n")

            if len(cell_dat) > 0:
                file.write(b"<CellData>\n")
                for key, vec in cell_dat.items():
                    self._write_data_array(file, key, vec, vec.size // self.nel)
                file.write(b"</CellData>\n")

            file.write(b"</Piece>\n")
            file.write(b"</ImageData>\n")
            file.write(b"</VTKFile>")

    @staticmethod
    def _write_data_array(file, name, vec, ncomponents):
        len_enc = ("<" if sys.byteorder == "little" else ">") + "Q"
        file.write(f'<DataArray type="Float32" Name="{name}" NumberOfComponents="{ncomponents}" format="binary">\n'
                   .encode())
        enc_data = base64.b64encode(np.ascontiguousarray(vec, dtype=np.float32))
        file.write(base64.b64encode(struct.pack(len_enc, len(enc_data))))  # Length of the encoded block
        file.write(enc_data)
        file.write(b"\n</DataArray>\n")
