"""B+Tree used by the in-memory storage engine for primary and secondary indexes.

Key properties:
    - All values stored in leaf nodes
    - Internal nodes only contain separator keys and child pointers
    - Leaf nodes are linked for efficient range and prefix scans
    - Keys are unique; secondary indexes append the primary key to make them so

Keys are built with ``sort_key`` so that values of different types (and
None) can share one tree without comparing incomparable objects, and so
that ``1``, ``1.0`` and ``True`` remain distinct keys.

References:
    - Bayer & McCreight, "B+Trees" (1972)
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

# Maximum keys per node (fanout - 1)
DEFAULT_MAX_KEYS = 32

NO_NODE = -1

SortKey = tuple


def sort_key(value: Any) -> SortKey:
    """Map a column value to a totally ordered key component.

    None sorts first; other values group by type name, then by value.
    Naive datetimes sort before aware ones, and aware ones compare as UTC
    instants. The original value is always the last component.
    """
    if value is None:
        return (0, "", None)
    if isinstance(value, datetime):
        aware = value.utcoffset() is not None
        instant = value.astimezone(timezone.utc).replace(tzinfo=None) if aware else value
        return (1, "datetime", aware, instant, value)
    return (1, type(value).__name__, value)


def key_value(key: SortKey) -> Any:
    """Return the column value a sort key was built from."""
    return key[-1]


def composite_key(values: tuple[Any, ...]) -> SortKey:
    """Build an index key from several column values."""
    return tuple(sort_key(v) for v in values)


@dataclass
class BTreeLeafNode:
    """A leaf node holding sorted keys and their values."""

    node_id: int
    keys: list[SortKey] = field(default_factory=list)
    values: list[Any] = field(default_factory=list)
    parent_id: int = NO_NODE
    next_id: int = NO_NODE
    prev_id: int = NO_NODE

    @property
    def is_leaf(self) -> bool:
        return True

    @property
    def num_keys(self) -> int:
        return len(self.keys)

    def position(self, key: SortKey) -> int:
        return bisect.bisect_left(self.keys, key)

    def search(self, key: SortKey) -> tuple[bool, Any]:
        pos = self.position(key)
        if pos < len(self.keys) and self.keys[pos] == key:
            return True, self.values[pos]
        return False, None

    def insert(self, key: SortKey, value: Any) -> bool:
        """Insert keeping keys sorted. Returns False if the key exists."""
        pos = self.position(key)
        if pos < len(self.keys) and self.keys[pos] == key:
            return False
        self.keys.insert(pos, key)
        self.values.insert(pos, value)
        return True

    def replace(self, key: SortKey, value: Any) -> bool:
        pos = self.position(key)
        if pos < len(self.keys) and self.keys[pos] == key:
            self.values[pos] = value
            return True
        return False

    def delete(self, key: SortKey) -> bool:
        pos = self.position(key)
        if pos < len(self.keys) and self.keys[pos] == key:
            self.keys.pop(pos)
            self.values.pop(pos)
            return True
        return False


@dataclass
class BTreeInternalNode:
    """An internal node. A node with N keys has N+1 children.

    All keys in children[i] are < keys[i]; all keys in children[i+1] are >= keys[i].
    """

    node_id: int
    keys: list[SortKey] = field(default_factory=list)
    children: list[int] = field(default_factory=list)
    parent_id: int = NO_NODE

    @property
    def is_leaf(self) -> bool:
        return False

    @property
    def num_keys(self) -> int:
        return len(self.keys)

    def find_child(self, key: SortKey) -> int:
        return self.children[bisect.bisect_right(self.keys, key)]

    def insert_child(self, key: SortKey, left_child: int, right_child: int) -> None:
        """Insert a separator after a child split.

        ``left_child`` is already present; ``right_child`` is the new node.
        """
        if not self.children:
            self.children = [left_child, right_child]
            self.keys = [key]
            return

        pos = bisect.bisect_right(self.keys, key)
        self.keys.insert(pos, key)
        self.children.insert(pos + 1, right_child)


BTreeNode = BTreeLeafNode | BTreeInternalNode


class BTree:
    """A B+Tree mapping unique sort keys to values.

    Deletion does not rebalance: leaves may become empty, which keeps
    separators valid and scans correct. Not thread-safe; callers hold the
    owning database's lock.
    """

    def __init__(self, max_keys: int = DEFAULT_MAX_KEYS) -> None:
        if max_keys < 3:
            raise ValueError(f"max_keys must be at least 3, got {max_keys}")
        self._max_keys = max_keys
        self.clear()

    def clear(self) -> None:
        """Drop every entry."""
        self._next_node_id = 1
        self._nodes: dict[int, BTreeNode] = {0: BTreeLeafNode(node_id=0)}
        self._root_id = 0
        self._height = 1
        self._num_entries = 0

    @property
    def height(self) -> int:
        return self._height

    def __len__(self) -> int:
        return self._num_entries

    def _allocate_node_id(self) -> int:
        node_id = self._next_node_id
        self._next_node_id += 1
        return node_id

    def _find_leaf(self, key: SortKey) -> BTreeLeafNode:
        node = self._nodes[self._root_id]
        while not node.is_leaf:
            assert isinstance(node, BTreeInternalNode)
            node = self._nodes[node.find_child(key)]
        assert isinstance(node, BTreeLeafNode)
        return node

    def search(self, key: SortKey) -> tuple[bool, Any]:
        """Return ``(found, value)`` for a key."""
        return self._find_leaf(key).search(key)

    def contains(self, key: SortKey) -> bool:
        return self.search(key)[0]

    def insert(self, key: SortKey, value: Any) -> bool:
        """Insert a key. Returns False if it already exists."""
        leaf = self._find_leaf(key)
        if not leaf.insert(key, value):
            return False
        self._num_entries += 1
        if leaf.num_keys > self._max_keys:
            self._split_leaf(leaf)
        return True

    def replace(self, key: SortKey, value: Any) -> bool:
        """Replace the value of an existing key. Returns False if absent."""
        return self._find_leaf(key).replace(key, value)

    def delete(self, key: SortKey) -> bool:
        """Delete a key. Returns False if absent."""
        if self._find_leaf(key).delete(key):
            self._num_entries -= 1
            return True
        return False

    def _split_leaf(self, leaf: BTreeLeafNode) -> None:
        new_leaf = BTreeLeafNode(node_id=self._allocate_node_id())

        mid = len(leaf.keys) // 2
        new_leaf.keys = leaf.keys[mid:]
        new_leaf.values = leaf.values[mid:]
        leaf.keys = leaf.keys[:mid]
        leaf.values = leaf.values[:mid]

        new_leaf.next_id = leaf.next_id
        new_leaf.prev_id = leaf.node_id
        leaf.next_id = new_leaf.node_id
        if new_leaf.next_id != NO_NODE:
            next_node = self._nodes[new_leaf.next_id]
            assert isinstance(next_node, BTreeLeafNode)
            next_node.prev_id = new_leaf.node_id

        self._nodes[new_leaf.node_id] = new_leaf
        self._insert_into_parent(leaf, new_leaf.keys[0], new_leaf)

    def _insert_into_parent(self, left: BTreeNode, key: SortKey, right: BTreeNode) -> None:
        if left.parent_id == NO_NODE:
            new_root = BTreeInternalNode(node_id=self._allocate_node_id())
            new_root.insert_child(key, left.node_id, right.node_id)
            left.parent_id = new_root.node_id
            right.parent_id = new_root.node_id
            self._nodes[new_root.node_id] = new_root
            self._root_id = new_root.node_id
            self._height += 1
            return

        parent = self._nodes[left.parent_id]
        assert isinstance(parent, BTreeInternalNode)
        parent.insert_child(key, left.node_id, right.node_id)
        right.parent_id = parent.node_id

        if parent.num_keys > self._max_keys:
            self._split_internal(parent)

    def _split_internal(self, node: BTreeInternalNode) -> None:
        new_node = BTreeInternalNode(node_id=self._allocate_node_id())

        # The middle key moves up; it is kept in neither half.
        mid = len(node.keys) // 2
        separator = node.keys[mid]
        new_node.keys = node.keys[mid + 1:]
        new_node.children = node.children[mid + 1:]
        node.keys = node.keys[:mid]
        node.children = node.children[: mid + 1]

        for child_id in new_node.children:
            self._nodes[child_id].parent_id = new_node.node_id

        self._nodes[new_node.node_id] = new_node
        self._insert_into_parent(node, separator, new_node)

    def _leftmost_leaf(self) -> BTreeLeafNode:
        node = self._nodes[self._root_id]
        while not node.is_leaf:
            assert isinstance(node, BTreeInternalNode)
            node = self._nodes[node.children[0]]
        assert isinstance(node, BTreeLeafNode)
        return node

    def _rightmost_leaf(self) -> BTreeLeafNode:
        node = self._nodes[self._root_id]
        while not node.is_leaf:
            assert isinstance(node, BTreeInternalNode)
            node = self._nodes[node.children[-1]]
        assert isinstance(node, BTreeLeafNode)
        return node

    def _iter_from(self, leaf: BTreeLeafNode, start: int) -> Iterator[tuple[SortKey, Any]]:
        while True:
            for i in range(start, len(leaf.keys)):
                yield leaf.keys[i], leaf.values[i]
            if leaf.next_id == NO_NODE:
                return
            next_node = self._nodes[leaf.next_id]
            assert isinstance(next_node, BTreeLeafNode)
            leaf, start = next_node, 0

    def scan_all(self) -> Iterator[tuple[SortKey, Any]]:
        """Yield every ``(key, value)`` in key order."""
        yield from self._iter_from(self._leftmost_leaf(), 0)

    def prefix_scan(self, prefix: SortKey) -> Iterator[tuple[SortKey, Any]]:
        """Yield entries of a tuple-keyed tree whose key starts with ``prefix``."""
        leaf = self._find_leaf(prefix)
        width = len(prefix)
        for key, value in self._iter_from(leaf, leaf.position(prefix)):
            if key[:width] != prefix:
                return
            yield key, value

    def last_key(self) -> SortKey | None:
        """Return the largest key, or None if the tree is empty."""
        leaf: BTreeLeafNode | None = self._rightmost_leaf()
        while leaf is not None and not leaf.keys:
            if leaf.prev_id == NO_NODE:
                return None
            prev = self._nodes[leaf.prev_id]
            assert isinstance(prev, BTreeLeafNode)
            leaf = prev
        return leaf.keys[-1] if leaf is not None else None
