import pytest
import numpy as np
import numpy.testing as npt
import pysand

np.random.seed(0)

SIZES = (3, 4, 3, 4, 3, 3, 3, 3, 3)


def random_state(sizes=SIZES):
    return pysand.BlockState(sizes, np.random.rand(sum(sizes)))


class TestConstruction:
    def test_zeros(self):
        s = pysand.BlockState(SIZES)
        assert s.size == sum(SIZES)
        assert s.sizes == SIZES
        npt.assert_equal(s.values, 0.0)
        for name, n in zip(pysand.BLOCK_NAMES, SIZES):
            assert s.block_size(name) == n
            assert s[name].shape == (n, )

    def test_from_dict_sizes(self):
        s = pysand.BlockState(dict(density=2, displacement=5))
        assert s.block_size("density") == 2
        assert s.block_size("displacement") == 5
        assert s.block_size("unfiltered_density") == 0
        assert s.size == 7

    def test_from_blocks(self):
        s = pysand.BlockState.from_blocks(dict(density=[1.0, 2.0], density_upper_slack=3.0))
        assert s.block_size("density") == 2
        assert s.block_size("density_upper_slack") == 1
        npt.assert_equal(s["density"], [1.0, 2.0])
        npt.assert_equal(s["density_upper_slack"], [3.0])

    def test_from_blocks_sequence(self):
        blocks = [np.arange(n, dtype=float) + i for i, n in enumerate(SIZES)]
        s = pysand.BlockState.from_blocks(blocks)
        assert s.sizes == SIZES
        for name, b in zip(pysand.BLOCK_NAMES, blocks):
            npt.assert_equal(s[name], b)

    def test_block_order_in_vector(self):
        s = random_state()
        npt.assert_equal(np.concatenate([s[n] for n in pysand.BLOCK_NAMES]), s.values)
        assert s.block_slice("density").start == 0
        assert s.block_slice("density_upper_slack_multiplier").stop == s.size

    def test_wrong_number_of_blocks(self):
        with pytest.raises(ValueError):
            pysand.BlockState((1, 2, 3))

    def test_wrong_value_size(self):
        with pytest.raises(ValueError):
            pysand.BlockState(SIZES, np.zeros(3))

    def test_unknown_name(self):
        s = random_state()
        with pytest.raises(ValueError):
            s["not_a_block"]
        with pytest.raises(ValueError):
            pysand.BlockState(dict(velocity=3))

    def test_set_block(self):
        s = pysand.BlockState(SIZES)
        s["displacement"] = [1, 2, 3, 4]
        npt.assert_equal(s["displacement"], [1, 2, 3, 4])
        assert s.l1_norm() == 10

    def test_blocks_dict(self):
        s = random_state()
        blocks = s.blocks()
        assert tuple(blocks.keys()) == pysand.BLOCK_NAMES
        for n in pysand.BLOCK_NAMES:
            npt.assert_equal(blocks[n], s[n])


class TestArithmetic:
    def test_add_sub(self):
        a, b = random_state(), random_state()
        npt.assert_allclose((a + b).values, a.values + b.values)
        npt.assert_allclose((a - b).values, a.values - b.values)
        npt.assert_allclose((-a).values, -a.values)

    def test_scalar(self):
        a = random_state()
        npt.assert_allclose((2.5 * a).values, 2.5 * a.values)
        npt.assert_allclose((a * 2.5).values, 2.5 * a.values)
        npt.assert_allclose((np.float64(0.5) * a).values, 0.5 * a.values)
        npt.assert_allclose((a / 4).values, a.values / 4)
        assert isinstance(np.float64(0.5) * a, pysand.BlockState)

    def test_axpy(self):
        a, b = random_state(), random_state()
        npt.assert_allclose(a.axpy(0.3, b).values, a.values + 0.3 * b.values)

    def test_no_aliasing(self):
        a, b = random_state(), random_state()
        a0 = a.values.copy()
        c = a + b
        c["density"] = 100.0
        npt.assert_equal(a.values, a0)

        d = a.copy()
        d.values[:] = 0
        npt.assert_equal(a.values, a0)

        e = a.axpy(1.0, b)
        e["displacement"] = -1.0
        npt.assert_equal(a.values, a0)

    def test_incompatible_sizes(self):
        a = random_state()
        b = random_state((1, ) * 9)
        with pytest.raises(ValueError):
            a + b
        with pytest.raises(TypeError):
            a + np.ones(a.size)

    def test_values_setter_copies(self):
        a = random_state()
        v = np.ones(a.size)
        a.values = v
        v[:] = 2
        npt.assert_equal(a.values, 1.0)


class TestReductions:
    def test_norms(self):
        s = pysand.BlockState(SIZES)
        s["displacement"] = [1, -2, 3, -4]
        s["density"] = [-5, 0, 0]
        assert s.l1_norm() == 15
        assert s.linfty_norm() == 5
        assert s.l1_norm("displacement") == 10
        assert s.linfty_norm("displacement") == 4
        assert s.l1_norm(["density", "displacement"]) == 15

    def test_empty_block_norm(self):
        s = pysand.BlockState(dict(density=3))
        assert s.linfty_norm("displacement") == 0.0
        assert s.l1_norm("displacement") == 0.0

    def test_dot(self):
        a, b = random_state(), random_state()
        npt.assert_allclose(a.dot(b), a.values @ b.values)
        npt.assert_allclose(a.dot(b, pysand.DECISION_BLOCKS),
                            sum(a[n] @ b[n] for n in pysand.DECISION_BLOCKS))

    def test_positivity(self):
        s = pysand.BlockState(SIZES)
        assert s.is_non_negative()
        assert not s.is_positive()
        s["density_lower_slack"] = 0.1
        assert s.is_positive("density_lower_slack")
        s["density_lower_slack"][1] = -1e-12
        assert not s.is_non_negative("density_lower_slack")
