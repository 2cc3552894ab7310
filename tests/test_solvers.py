import pytest
import numpy as np
import numpy.testing as npt
import scipy.sparse as sps
from scipy.sparse import SparseEfficiencyWarning
import pysand.solvers as solvers

np.random.seed(0)  # Set seed for repeatability


def generate_symm_indef(n=20):
    """ Generates a real symmetric indefinite sparse matrix """
    A = sps.random(n, n, density=0.2, random_state=0)
    return (A + A.T + sps.diags(np.linspace(-3, 3, n) + 0.05)).tocsc()


def generate_nonsymm(n=20):
    A = sps.random(n, n, density=0.2, random_state=1)
    return (A + 5 * sps.identity(n)).tocsc()


class TestMatrixChecks:
    def test_symmetric(self):
        A = generate_symm_indef()
        assert solvers.matrix_is_symmetric(A)
        assert solvers.matrix_is_symmetric(A.toarray())
        assert not solvers.matrix_is_symmetric(generate_nonsymm())
        assert not solvers.matrix_is_symmetric(sps.csc_matrix(np.ones((2, 3))))

    def test_finite(self):
        A = generate_nonsymm().tolil()
        assert solvers.matrix_is_finite(A.tocsc())
        A[0, 0] = np.nan
        assert not solvers.matrix_is_finite(A.tocsc())
        assert not solvers.matrix_is_finite(A.toarray())

    def test_complex_sparse(self):
        assert solvers.matrix_is_complex(1j * generate_nonsymm())
        assert not solvers.matrix_is_complex(generate_nonsymm())
        assert solvers.matrix_is_sparse(generate_nonsymm())
        assert not solvers.matrix_is_sparse(np.eye(3))


@pytest.mark.parametrize("solver_type", [solvers.SolverSparseLU, solvers.SolverDenseLU])
class TestLU:
    @pytest.mark.parametrize("generator", [generate_symm_indef, generate_nonsymm])
    def test_solve(self, solver_type, generator):
        A = generator()
        b = np.random.rand(A.shape[0])
        solver = solver_type(A)
        x = solver.solve(b)
        npt.assert_allclose(A @ x, b, atol=1e-10)
        assert solver.residual(A, x, b) < 1e-10

    def test_transpose(self, solver_type):
        A = generate_nonsymm()
        b = np.random.rand(A.shape[0])
        x = solver_type(A).solve(b, trans='T')
        npt.assert_allclose(A.T @ x, b, atol=1e-10)
        with pytest.raises(TypeError):
            solver_type(A).solve(b, trans='H')

    def test_multiple_rhs(self, solver_type):
        A = generate_nonsymm()
        B = np.random.rand(A.shape[0], 3)
        X = solver_type(A).solve(B)
        npt.assert_allclose(A @ X, B, atol=1e-10)

    def test_singular(self, solver_type):
        A = sps.csc_matrix(np.array([[1.0, 2.0, 0.0], [2.0, 4.0, 0.0], [0.0, 0.0, 1.0]]))
        with pytest.raises(np.linalg.LinAlgError):
            solver_type(A).solve(np.ones(3))

    def test_zero_matrix(self, solver_type):
        with pytest.raises(np.linalg.LinAlgError):
            solver_type(sps.csc_matrix((4, 4))).solve(np.ones(4))


class TestSparseLU:
    def test_dense_input_warns(self):
        A = generate_nonsymm().toarray()
        with pytest.warns(SparseEfficiencyWarning):
            solvers.SolverSparseLU(A)

    def test_complex(self):
        with pytest.raises(TypeError):
            solvers.SolverSparseLU(1j * generate_nonsymm())

    def test_non_finite(self):
        A = generate_nonsymm().tolil()
        A[1, 1] = np.inf
        with pytest.raises(np.linalg.LinAlgError):
            solvers.SolverSparseLU(A.tocsc())


class TestAffineConstraints:
    def setup_method(self):
        # x1 = 2, x3 = x0 - 0.5 x4 + 1
        self.c = solvers.AffineConstraints(6)
        self.c.add_dirichlet(1, 2.0)
        self.c.add_line(3, [(0, 1.0), (4, -0.5)], inhomogeneity=1.0)
        self.c.close()

    def test_layout(self):
        assert self.c.n_free == 4
        npt.assert_equal(self.c.free, [0, 2, 4, 5])
        assert self.c.is_constrained(1)
        assert self.c.is_constrained(3)
        assert not self.c.is_constrained(0)
        assert self.c.matrix.shape == (6, 4)

    def test_distribute(self):
        y = np.array([1.0, 2.0, 3.0, 4.0])
        npt.assert_allclose(self.c.distribute(y), [1.0, 2.0, 2.0, 1.0 - 1.5 + 1.0, 3.0, 4.0])
        npt.assert_allclose(self.c.distribute(y, homogeneous=True), [1.0, 0.0, 2.0, 1.0 - 1.5, 3.0, 4.0])
        npt.assert_allclose(self.c.restrict(self.c.distribute(y)), y)

    def test_project(self):
        b = np.arange(6, dtype=float)
        # Contributions of dof 3 move to dofs 0 and 4
        npt.assert_allclose(self.c.project(b), [0.0 + 3.0, 0.0, 2.0, 0.0, 4.0 - 1.5, 5.0])

    def test_condense_matrix(self):
        A = sps.identity(6, format="csc")
        Ac = self.c.condense_matrix(A)
        C = self.c.matrix.toarray()
        npt.assert_allclose(Ac.toarray(), C.T @ C)

    def test_dirichlet_array(self):
        c = solvers.AffineConstraints(5).add_dirichlet([0, 4], [1.0, -1.0]).close()
        npt.assert_allclose(c.inhomogeneity, [1.0, 0, 0, 0, -1.0])

    @pytest.mark.parametrize("dof, entries", [(6, None), (2, [(7, 1.0)]), (2, [(2, 1.0)])])
    def test_invalid_line(self, dof, entries):
        with pytest.raises(ValueError):
            solvers.AffineConstraints(6).add_line(dof, entries)

    def test_chained(self):
        c = solvers.AffineConstraints(4).add_line(0, [(1, 2.0)], 1.0).add_line(1, [(2, 1.0), (3, 0.5)], -1.0).close()
        npt.assert_equal(c.free, [2, 3])
        # x0 = 2 (x2 + 0.5 x3 - 1) + 1
        npt.assert_allclose(c.distribute(np.array([1.0, 4.0])), [5.0, 2.0, 1.0, 4.0])

    def test_chained_dirichlet(self):
        c = solvers.AffineConstraints(10).add_dirichlet([0, 9], [2.0, 0.0])
        c.add_line(5, [(j, -1.0) for j in range(5)])
        c.close()
        x = c.distribute(np.arange(1.0, 8.0))
        npt.assert_allclose(x[[0, 9]], [2.0, 0.0])
        npt.assert_allclose(x[5], -np.sum(x[:5]))

    def test_cyclic(self):
        c = solvers.AffineConstraints(4).add_line(0, [(1, 1.0)]).add_line(1, [(2, 1.0)]).add_line(2, [(0, 0.5)])
        with pytest.raises(ValueError):
            c.close()

    def test_dict_entries(self):
        c = solvers.AffineConstraints(3).add_line(2, {0: 0.5, 1: 0.5}).close()
        npt.assert_allclose(c.distribute(np.array([2.0, 4.0])), [2.0, 4.0, 3.0])


class TestConstrainedSolver:
    def test_solve(self):
        A = generate_symm_indef(10)
        constraints = solvers.AffineConstraints(10).add_dirichlet([0, 9])
        constraints.add_line(5, [(j, -1.0) for j in range(5)])
        constraints.close()
        b = np.random.rand(10)

        solver = solvers.ConstrainedSolver(solvers.SolverSparseLU(), constraints, A)
        x = solver.solve(b)
        assert x[0] == 0.0
        assert x[9] == 0.0
        npt.assert_allclose(x[5], -np.sum(x[:5]))
        # Condensed equations are satisfied
        npt.assert_allclose(constraints.project(A @ x - b), 0, atol=1e-10)

    def test_shape_mismatch(self):
        constraints = solvers.AffineConstraints(4).add_dirichlet(0).close()
        with pytest.raises(ValueError):
            solvers.ConstrainedSolver(solvers.SolverDenseLU(), constraints, sps.identity(5))
