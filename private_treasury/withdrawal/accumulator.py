"""
Incremental fixed-depth hash tree for the deposit accumulator.

Leaves are appended left to right. Any position not yet filled holds the
zero value, and an empty subtree of height h hashes to zeros[h]:

    zeros[0]   = zero_value
    zeros[h+1] = H(zeros[h], ..., zeros[h])      (arity copies)

so the root is defined for every prefix length and equals the root the
ledger contract computes over the same leaves. Children are hashed in
positional order (no sorting).
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from .config import SNARK_SCALAR_FIELD, TreeParameters
from .types import FieldHasher, InclusionPath

logger = logging.getLogger(__name__)


def compute_zeros(params: TreeParameters, hasher: FieldHasher) -> List[int]:
    """
    Hashes of empty subtrees for every height 0..depth.

    Returns:
        List of depth + 1 values; the last one is the empty-tree root
    """
    zeros = [params.zero_value]
    for _ in range(params.depth):
        zeros.append(hasher([zeros[-1]] * params.arity))
    return zeros


class IncrementalTree:
    """
    Append-only accumulator.

    Only populated nodes are stored; insert() updates one node per level and
    gen_path() reads k - 1 siblings per level, falling back to zeros[h] for
    positions that were never written.

    Example:
        >>> tree = IncrementalTree(TreeParameters(depth=4), hasher)
        >>> tree.insert(leaf_hash)
        >>> path = tree.gen_path(0)
        >>> assert verify_path(path, hasher)
    """

    def __init__(self, params: TreeParameters, hasher: FieldHasher) -> None:
        self.params = params.validate()
        self._hasher = hasher
        self._zeros = compute_zeros(params, hasher)
        # _levels[h][i] is node i at height h (0 = leaves)
        self._levels: List[Dict[int, int]] = [{} for _ in range(params.depth + 1)]
        self._count = 0
        self._root = self._zeros[params.depth]

    @classmethod
    def from_leaves(
        cls, params: TreeParameters, hasher: FieldHasher, leaves: Iterable[int]
    ) -> "IncrementalTree":
        tree = cls(params, hasher)
        for leaf in leaves:
            tree.insert(leaf)
        return tree

    def __len__(self) -> int:
        return self._count

    @property
    def root(self) -> int:
        return self._root

    @property
    def zeros(self) -> Tuple[int, ...]:
        return tuple(self._zeros)

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._levels[0][index]

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and return its index.

        Raises:
            ValueError: If the tree is full or leaf is not a field element
        """
        if not isinstance(leaf, int) or not 0 <= leaf < SNARK_SCALAR_FIELD:
            raise ValueError("leaf must be a scalar field element")
        if self._count >= self.params.capacity:
            raise ValueError(f"tree is full ({self.params.capacity} leaves)")

        k = self.params.arity
        index = self._count
        self._levels[0][index] = leaf

        position = index
        current = leaf
        for height in range(self.params.depth):
            parent = position // k
            first = parent * k
            children = [
                current if first + j == position else self._node(height, first + j)
                for j in range(k)
            ]
            current = self._hasher(children)
            position = parent
            self._levels[height + 1][position] = current

        self._count += 1
        self._root = current
        return index

    def gen_path(self, index: int) -> InclusionPath:
        """
        Membership path for an inserted leaf.

        Raises:
            IndexError: If index has not been inserted
        """
        self._check_index(index)
        k = self.params.arity

        indices: List[int] = []
        path_elements: List[Tuple[int, ...]] = []
        position = index
        for height in range(self.params.depth):
            selector = position % k
            first = position - selector
            siblings = tuple(
                self._node(height, first + j) for j in range(k) if j != selector
            )
            indices.append(selector)
            path_elements.append(siblings)
            position //= k

        return InclusionPath(
            index=index,
            leaf=self._levels[0][index],
            root=self._root,
            indices=tuple(indices),
            path_elements=tuple(path_elements),
        )

    def _node(self, height: int, position: int) -> int:
        return self._levels[height].get(position, self._zeros[height])

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or not 0 <= index < self._count:
            raise IndexError(f"leaf {index} not inserted (tree has {self._count})")


def verify_path(path: InclusionPath, hasher: FieldHasher) -> bool:
    """
    Recompute the root from a path and compare it with path.root.

    Example:
        if verify_path(tree.gen_path(i), hasher):
            print("leaf is in tree")
    """
    return path.recompute_root(hasher) == path.root
