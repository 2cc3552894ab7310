from typing import Iterable, Union
import numpy as np
import scipy.sparse as sps


class AffineConstraints:
    r""" Affine constraints on the degrees of freedom of a linear system

    Each constrained dof :math:`x_i` is written in terms of unconstrained dofs as

    :math:`x_i = \sum_j c_{ij} x_j + g_i`.

    A Dirichlet condition is a line without entries. After :meth:`close`, all dofs are described by the reduced vector
    of unconstrained dofs :math:`\mathbf{y}` as :math:`\mathbf{x} = \mathbf{C}\mathbf{y} + \mathbf{g}`.

    Args:
        n: Total number of degrees of freedom

    Attributes:
        lines: Dictionary of constrained dof to a tuple of ``(entries, inhomogeneity)``
        free: Indices of the unconstrained dofs (available after :meth:`close`)
    """
    def __init__(self, n: int):
        self.n = int(n)
        self.lines = dict()
        self.free = None
        self._C = None
        self._g = None

    def _check_dof(self, dof):
        if not 0 <= dof < self.n:
            raise ValueError(f"Dof {dof} is out of range [0, {self.n})")

    def add_line(self, dof: int, entries: Union[dict, Iterable] = None, inhomogeneity: float = 0.0):
        """ Constrain a dof to a linear combination of other dofs

        Args:
            dof: The constrained dof
            entries (optional): Dictionary or list of ``(dof, coefficient)`` pairs
            inhomogeneity (optional): Constant term
        """
        dof = int(dof)
        self._check_dof(dof)
        if entries is None:
            entries = []
        elif isinstance(entries, dict):
            entries = list(entries.items())
        entries = [(int(j), float(c)) for j, c in entries]
        for j, _ in entries:
            self._check_dof(j)
            if j == dof:
                raise ValueError(f"Dof {dof} cannot be constrained to itself")
        self.lines[dof] = (entries, float(inhomogeneity))
        self._C = None
        return self

    def add_dirichlet(self, dofs: Union[int, Iterable[int]], values=0.0):
        """ Fix one or more dofs to (a) given value(s) """
        dofs = np.atleast_1d(np.asarray(dofs, dtype=int)).ravel()
        values = np.broadcast_to(values, dofs.shape)
        for d, v in zip(dofs, values):
            self.add_line(d, inhomogeneity=v)
        return self

    def is_constrained(self, dof: int):
        return int(dof) in self.lines

    @property
    def n_free(self):
        return self.n - len(self.lines)

    def _resolve(self, dof, visiting=()):
        """ Expand a line until it only refers to unconstrained dofs """
        if dof in visiting:
            raise ValueError(f"Constraint of dof {dof} depends on itself")
        entries, g = self.lines[dof]
        resolved = dict()
        for j, c in entries:
            if j in self.lines:
                sub_entries, sub_g = self._resolve(j, visiting + (dof, ))
                for k, ck in sub_entries.items():
                    resolved[k] = resolved.get(k, 0.0) + c * ck
                g += c * sub_g
            else:
                resolved[j] = resolved.get(j, 0.0) + c
        return resolved, g

    def close(self):
        """ Build the constraint matrix

        Entries referring to other constrained dofs are replaced by their lines, so the final constraints only refer to
        unconstrained dofs. Cyclic constraints raise a ``ValueError``.
        """
        resolved = {dof: self._resolve(dof) for dof in self.lines}

        is_free = np.ones(self.n, dtype=bool)
        is_free[list(self.lines.keys())] = False
        self.free = np.flatnonzero(is_free)
        col_of = -np.ones(self.n, dtype=int)
        col_of[self.free] = np.arange(self.free.size)

        rows, cols, vals = [self.free], [np.arange(self.free.size)], [np.ones(self.free.size)]
        self._g = np.zeros(self.n)
        for dof, (entries, g) in resolved.items():
            if len(entries) > 0:
                rows.append(np.full(len(entries), dof))
                cols.append(col_of[np.fromiter(entries.keys(), dtype=int, count=len(entries))])
                vals.append(np.fromiter(entries.values(), dtype=float, count=len(entries)))
            self._g[dof] = g
        self._C = sps.coo_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                                 shape=(self.n, self.free.size)).tocsr()
        return self

    @property
    def matrix(self):
        r""" The constraint matrix :math:`\mathbf{C}` of size ``(n, n_free)`` """
        if self._C is None:
            self.close()
        return self._C

    @property
    def inhomogeneity(self):
        if self._C is None:
            self.close()
        return self._g

    def condense_matrix(self, A):
        r""" Returns :math:`\mathbf{C}^\text{T}\mathbf{A}\mathbf{C}` """
        C = self.matrix
        return (C.T @ A @ C).tocsc()

    def condense_vector(self, b):
        r""" Returns :math:`\mathbf{C}^\text{T}\mathbf{b}` """
        return self.matrix.T @ b

    def restrict(self, x):
        """ Select the unconstrained dofs """
        if self._C is None:
            self.close()
        return x[self.free, ...]

    def distribute(self, y, homogeneous=False):
        r""" Returns :math:`\mathbf{x} = \mathbf{C}\mathbf{y} + \mathbf{g}`, omitting :math:`\mathbf{g}` when
        ``homogeneous`` """
        x = self.matrix @ y
        if not homogeneous:
            x = (x.T + self.inhomogeneity).T
        return x

    def project(self, b):
        r""" Condense a (residual) vector onto the unconstrained dofs, keeping its full size

        Contributions of constrained dofs are moved to the dofs they depend on, and the constrained entries are
        set to zero.
        """
        x = np.zeros_like(b, dtype=np.result_type(b, float))
        x[self.free, ...] = self.condense_vector(b)
        return x
