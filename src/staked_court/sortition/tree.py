"""K-ary sum trees for stake-weighted random selection.

Each tree is stored as a flat list of node weights with the root at index 0.
The children of node ``i`` live at ``K*i + 1 .. K*i + K``. Leaves carry a
stake; every internal node carries the sum of its children, so the root is
always the total stake in the tree. Updates and draws both walk a single
root-to-leaf path, O(log_K n).
"""
from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from staked_court.errors import InvariantViolationError, PreconditionError, UnknownEntityError

LeafId = TypeVar("LeafId", bound=Hashable)


@dataclass(slots=True)
class SortitionSumTree(Generic[LeafId]):
    k: int
    nodes: list[int] = field(default_factory=lambda: [0])
    stack: list[int] = field(default_factory=list)
    ids_to_node_indexes: dict[LeafId, int] = field(default_factory=dict)
    node_indexes_to_ids: dict[int, LeafId] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.nodes[0]

    def stake_of(self, leaf_id: LeafId) -> int:
        tree_index = self.ids_to_node_indexes.get(leaf_id, 0)
        if tree_index == 0:
            return 0
        return self.nodes[tree_index]

    def set(self, value: int, leaf_id: LeafId) -> None:
        if value < 0:
            raise PreconditionError("sortition weight must be non-negative")

        tree_index = self.ids_to_node_indexes.get(leaf_id, 0)
        if tree_index == 0:
            if value == 0:
                return
            tree_index = self._allocate_leaf(value)
            self.ids_to_node_indexes[leaf_id] = tree_index
            self.node_indexes_to_ids[tree_index] = leaf_id
            self._update_parents(tree_index, value)
            return

        current = self.nodes[tree_index]
        if value == 0:
            self.nodes[tree_index] = 0
            self.stack.append(tree_index)
            del self.ids_to_node_indexes[leaf_id]
            del self.node_indexes_to_ids[tree_index]
            self._update_parents(tree_index, -current)
        elif value != current:
            self.nodes[tree_index] = value
            self._update_parents(tree_index, value - current)

    def _allocate_leaf(self, value: int) -> int:
        if self.stack:
            tree_index = self.stack.pop()
            self.nodes[tree_index] = value
            return tree_index

        tree_index = len(self.nodes)
        self.nodes.append(value)
        # First child of a node that is still a leaf: push that leaf down one
        # level so its old position becomes a sum node.
        if tree_index != 1 and (tree_index - 1) % self.k == 0:
            parent_index = tree_index // self.k
            moved_index = tree_index + 1
            self.nodes.append(self.nodes[parent_index])
            parent_id = self.node_indexes_to_ids.pop(parent_index, None)
            if parent_id is not None:
                self.ids_to_node_indexes[parent_id] = moved_index
                self.node_indexes_to_ids[moved_index] = parent_id
        return tree_index

    def _update_parents(self, tree_index: int, delta: int) -> None:
        parent_index = tree_index
        while parent_index != 0:
            parent_index = (parent_index - 1) // self.k
            self.nodes[parent_index] += delta
            if self.nodes[parent_index] < 0:
                raise InvariantViolationError("sortition sum node went negative")

    def draw(self, drawn_number: int) -> LeafId | None:
        """Pick a leaf with probability proportional to its weight.

        Returns ``None`` when the tree holds no weight at all.
        """
        if self.nodes[0] == 0:
            return None

        tree_index = 0
        current = drawn_number % self.nodes[0]
        node_count = len(self.nodes)
        while self.k * tree_index + 1 < node_count:
            for offset in range(1, self.k + 1):
                node_index = self.k * tree_index + offset
                if node_index >= node_count:
                    raise InvariantViolationError("sortition descent ran past the last node")
                node_value = self.nodes[node_index]
                if current >= node_value:
                    current -= node_value
                else:
                    tree_index = node_index
                    break
        return self.node_indexes_to_ids.get(tree_index)

    def query_leafs(self, cursor: int, count: int) -> tuple[int, list[int], bool]:
        """Page through leaf weights in node order.

        Returns the first leaf index, up to ``count`` weights starting at
        ``cursor`` within the leaf range, and whether more leaves follow.
        """
        start_index = 0
        for index in range(len(self.nodes)):
            if self.k * index + 1 >= len(self.nodes):
                start_index = index
                break

        begin = start_index + cursor
        values = self.nodes[begin : begin + count]
        has_more = begin + count < len(self.nodes)
        return start_index, values, has_more


class SortitionTrees(Generic[LeafId]):
    """Keyed store of independent sortition trees."""

    def __init__(self) -> None:
        self._trees: dict[Hashable, SortitionSumTree[LeafId]] = {}

    def create_tree(self, key: Hashable, k: int) -> None:
        if key in self._trees:
            raise PreconditionError(f"sortition tree already exists: {key}")
        if k <= 1:
            raise PreconditionError("K must be greater than one")
        self._trees[key] = SortitionSumTree(k=k)

    def tree(self, key: Hashable) -> SortitionSumTree[LeafId]:
        try:
            return self._trees[key]
        except KeyError as exc:
            raise UnknownEntityError(f"unknown sortition tree: {key}") from exc

    def set(self, key: Hashable, value: int, leaf_id: LeafId) -> None:
        self.tree(key).set(value, leaf_id)

    def stake_of(self, key: Hashable, leaf_id: LeafId) -> int:
        return self.tree(key).stake_of(leaf_id)

    def total(self, key: Hashable) -> int:
        return self.tree(key).total

    def draw(self, key: Hashable, drawn_number: int) -> LeafId | None:
        return self.tree(key).draw(drawn_number)

    def query_leafs(self, key: Hashable, cursor: int, count: int) -> tuple[int, list[int], bool]:
        return self.tree(key).query_leafs(cursor, count)

    def nodes(self, key: Hashable) -> list[int]:
        return self.tree(key).nodes

    def k(self, key: Hashable) -> int:
        return self.tree(key).k

    def id_at(self, key: Hashable, node_index: int) -> LeafId | None:
        return self.tree(key).node_indexes_to_ids.get(node_index)
