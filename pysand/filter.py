"""Density filter for a structured voxel domain"""
import numpy as np
import scipy.sparse as sps
from .common.domain import VoxelDomain


def density_filter_matrix(domain: VoxelDomain, radius: float) -> sps.csr_matrix:
    r"""Assemble the (row-normalized) density filter matrix

    The filtered densities are calculated as

    :math:`y_i = \sum_j \frac{H_{ij}}{s_i}x_j`,

    where :math:`H_{ij}=\max \left( r - \left| \mathbf{c}_j - \mathbf{c}_i \right|, 0 \right)` in terms of the element
    centers :math:`\mathbf{c}`, and :math:`s_i=\sum_j H_{ij}`.

    Only a square window of elements around each element is checked, encompassing the circle with the filter radius.

    Args:
        domain: The finite element domain
        radius: The filtering radius (in physical units)

    Returns:
        Filter matrix of size ``(nel, nel)``

    References:
      - Bruns & Tortorelli (2001). *Topology optimization of non-linear elastic structures and compliant mechanisms*.
        Computer Methods in Applied Mechanics and Engineering, 190(26–27), 3443–3459.
        `doi: 10.1016/S0045-7825(00)00278-4 <https://doi.org/10.1016/S0045-7825(00)00278-4>`_
    """
    if radius <= 0:
        raise ValueError(f"Filter radius must be positive, got {radius}")
    unit = domain.element_size[: domain.dim]
    delem = np.floor(radius / unit).astype(int)  # Window half-width in number of elements per direction
    delem = np.concatenate([delem, np.zeros(3 - domain.dim, dtype=int)])
    size = np.array([domain.nelx, domain.nely, max(domain.nelz, 1)])

    # Cartesian index of each element
    ijk = np.zeros((3, domain.nel), dtype=int)
    ijk[: domain.dim] = domain.get_elem_indices()

    rows, cols, vals = [], [], []
    for di in range(-delem[0], delem[0] + 1):
        for dj in range(-delem[1], delem[1] + 1):
            for dk in range(-delem[2], delem[2] + 1):
                nb = ijk + np.array([di, dj, dk])[:, None]
                inside = np.all((nb >= 0) & (nb < size[:, None]), axis=0)
                dist = np.linalg.norm(np.array([di, dj, dk])[: domain.dim] * unit)
                weight = radius - dist
                if weight <= 0 or not np.any(inside):
                    continue
                els = np.flatnonzero(inside)
                rows.append(els)
                cols.append(domain.get_elemnumber(*nb[:, inside]))
                vals.append(np.full(els.size, weight))

    H = sps.coo_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                       shape=(domain.nel, domain.nel)).tocsr()
    s = np.asarray(H.sum(axis=1)).ravel()
    return (sps.diags(1.0 / s) @ H).tocsr()
