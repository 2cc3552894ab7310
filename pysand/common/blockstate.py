from typing import Union, Iterable, Mapping
import numpy as np
from ..utils import _parse_to_list, _concatenate_to_array, _split_from_array

BLOCK_NAMES = (
    "density",
    "displacement",
    "unfiltered_density",
    "displacement_multiplier",
    "unfiltered_density_multiplier",
    "density_lower_slack",
    "density_lower_slack_multiplier",
    "density_upper_slack",
    "density_upper_slack_multiplier",
)

DECISION_BLOCKS = ("density", "displacement", "unfiltered_density")
SLACK_BLOCKS = ("density_lower_slack", "density_upper_slack")
SLACK_MULTIPLIER_BLOCKS = ("density_lower_slack_multiplier", "density_upper_slack_multiplier")
EQUALITY_MULTIPLIER_BLOCKS = ("displacement_multiplier", "unfiltered_density_multiplier") + SLACK_MULTIPLIER_BLOCKS

# Blocks moved with the primal and dual step length, respectively
PRIMAL_BLOCKS = DECISION_BLOCKS + SLACK_BLOCKS
DUAL_BLOCKS = EQUALITY_MULTIPLIER_BLOCKS

BlocksT = Union[str, Iterable[str], None]


class BlockState:
    r""" State (or step) vector of the interior-point method, partitioned into nine named blocks

    The blocks are stored in one contiguous vector, in the order given by ``BLOCK_NAMES``. Every arithmetic operation
    returns a new instance, so the states held by a driver never alias each other.

    Args:
        block_sizes: Number of entries for each block, either as sequence of nine integers or as dictionary
        values (optional): Flat vector with all values; zeros when not given

    Attributes:
        sizes: Tuple with the size of each block
        offsets: Cumulative offsets of the blocks in the flat vector, of size ``(10, )``
    """

    __array_ufunc__ = None  # numpy scalars defer to __rmul__

    def __init__(self, block_sizes: Union[Mapping[str, int], Iterable[int]], values: np.ndarray = None):
        if isinstance(block_sizes, Mapping):
            unknown = set(block_sizes.keys()) - set(BLOCK_NAMES)
            if len(unknown) > 0:
                raise ValueError(f"Unknown block name(s) {sorted(unknown)}")
            block_sizes = [block_sizes.get(n, 0) for n in BLOCK_NAMES]
        sizes = tuple(int(s) for s in block_sizes)
        if len(sizes) != len(BLOCK_NAMES):
            raise ValueError(f"Expected {len(BLOCK_NAMES)} block sizes, got {len(sizes)}")
        if any(s < 0 for s in sizes):
            raise ValueError("Block sizes must be non-negative")
        self.sizes = sizes
        self.offsets = np.zeros(len(sizes) + 1, dtype=int)
        self.offsets[1:] = np.cumsum(sizes)

        if values is None:
            self._values = np.zeros(self.offsets[-1])
        else:
            values = np.array(values, dtype=float).ravel()
            if values.size != self.offsets[-1]:
                raise ValueError(f"Size of the values ({values.size}) does not match the block sizes "
                                 f"({self.offsets[-1]})")
            self._values = values

    @classmethod
    def from_blocks(cls, blocks: Union[Mapping[str, np.ndarray], Iterable[np.ndarray]]):
        """ Create a state from the values of each block (dictionary by name or sequence in block order) """
        if isinstance(blocks, Mapping):
            unknown = set(blocks.keys()) - set(BLOCK_NAMES)
            if len(unknown) > 0:
                raise ValueError(f"Unknown block name(s) {sorted(unknown)}")
            blocks = [np.atleast_1d(blocks.get(n, np.zeros(0))) for n in BLOCK_NAMES]
        blocks = [np.atleast_1d(b) for b in _parse_to_list(blocks)]
        values, cumlens = _concatenate_to_array(blocks)
        return cls(np.diff(cumlens), values)

    @classmethod
    def from_vector(cls, block_sizes, vector: np.ndarray):
        return cls(block_sizes, vector)

    def zeros_like(self):
        return BlockState(self.sizes)

    def copy(self):
        return BlockState(self.sizes, self._values.copy())

    @property
    def values(self):
        """ The flat vector with all blocks """
        return self._values

    @values.setter
    def values(self, v):
        v = np.asarray(v, dtype=float).ravel()
        if v.size != self._values.size:
            raise ValueError(f"Size of the values ({v.size}) does not match the state size ({self._values.size})")
        self._values = v.copy()

    @property
    def size(self):
        return self._values.size

    @staticmethod
    def _index(name: str):
        try:
            return BLOCK_NAMES.index(name)
        except ValueError:
            raise ValueError(f"Unknown block name '{name}'") from None

    def block_slice(self, name: str):
        """ Slice of the block in the flat vector """
        i = self._index(name)
        return slice(self.offsets[i], self.offsets[i + 1])

    def block_size(self, name: str):
        return self.sizes[self._index(name)]

    def block(self, name: str):
        """ View on the values of a block """
        return self._values[self.block_slice(name)]

    def __getitem__(self, name: str):
        return self.block(name)

    def __setitem__(self, name: str, value):
        self._values[self.block_slice(name)] = value

    def blocks(self):
        """ Dictionary with a view on every block """
        return dict(zip(BLOCK_NAMES, _split_from_array(self._values, self.offsets)))

    def _select(self, blocks: BlocksT):
        if blocks is None:
            return self._values
        names = _parse_to_list(blocks)
        if len(names) == 1:
            return self.block(names[0])
        return np.concatenate([self.block(n) for n in names])

    # ------------- Arithmetic -------------
    def _check_compatible(self, other):
        if not isinstance(other, BlockState):
            raise TypeError(f"Expected a BlockState, got {type(other).__name__}")
        if other.sizes != self.sizes:
            raise ValueError(f"Block sizes do not match: {self.sizes} != {other.sizes}")

    def __add__(self, other):
        self._check_compatible(other)
        return BlockState(self.sizes, self._values + other._values)

    def __sub__(self, other):
        self._check_compatible(other)
        return BlockState(self.sizes, self._values - other._values)

    def __neg__(self):
        return BlockState(self.sizes, -self._values)

    def __mul__(self, alpha):
        if not np.isscalar(alpha):
            return NotImplemented
        return BlockState(self.sizes, alpha * self._values)

    __rmul__ = __mul__

    def __truediv__(self, alpha):
        if not np.isscalar(alpha):
            return NotImplemented
        return BlockState(self.sizes, self._values / alpha)

    def axpy(self, alpha: float, other):
        r""" Returns :math:`\mathbf{x} + \alpha \mathbf{y}` as a new state """
        self._check_compatible(other)
        return BlockState(self.sizes, self._values + alpha * other._values)

    # ------------- Reductions -------------
    def dot(self, other, blocks: BlocksT = None):
        """ Inner product, optionally restricted to one or more blocks """
        self._check_compatible(other)
        return float(np.dot(self._select(blocks), other._select(blocks)))

    def l1_norm(self, blocks: BlocksT = None):
        return float(np.sum(np.abs(self._select(blocks))))

    def linfty_norm(self, blocks: BlocksT = None):
        v = self._select(blocks)
        return float(np.max(np.abs(v))) if v.size > 0 else 0.0

    def is_non_negative(self, blocks: BlocksT = None):
        return bool(np.all(self._select(blocks) >= 0))

    def is_positive(self, blocks: BlocksT = None):
        return bool(np.all(self._select(blocks) > 0))

    def __repr__(self):
        sizes = ", ".join(f"{n}={s}" for n, s in zip(BLOCK_NAMES, self.sizes))
        return f"{type(self).__name__}({sizes})"
