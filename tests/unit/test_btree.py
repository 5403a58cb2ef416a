"""Unit tests for the B+Tree adapter."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from isam_tables.adapters.outbound.btree import BTree, composite_key, key_value, sort_key


@pytest.mark.unit
class TestSortKey:
    """Tests for sort key construction."""

    def test_none_sorts_first(self) -> None:
        """None precedes every value."""
        assert sort_key(None) < sort_key(0)
        assert sort_key(None) < sort_key("")

    def test_types_stay_distinct(self) -> None:
        """1, 1.0 and True are different keys."""
        keys = {sort_key(1), sort_key(1.0), sort_key(True)}

        assert len(keys) == 3

    def test_mixed_types_comparable(self) -> None:
        """Values of different types can share one ordering."""
        ordered = sorted([sort_key("a"), sort_key(3), sort_key(None)])

        assert ordered[0] == sort_key(None)

    def test_naive_and_aware_datetimes_comparable(self) -> None:
        """Naive datetimes sort before aware ones instead of failing to compare."""
        naive = sort_key(datetime(2024, 1, 1))
        aware = sort_key(datetime(2024, 1, 1, tzinfo=timezone.utc))

        assert sorted([aware, naive]) == [naive, aware]
        assert naive != aware

    def test_aware_datetimes_compare_as_instants(self) -> None:
        """Aware datetimes in different zones order by UTC instant."""
        plus_two = timezone(timedelta(hours=2))
        early = sort_key(datetime(2024, 1, 1, 11, 0, tzinfo=plus_two))
        late = sort_key(datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc))

        assert early < late

    def test_key_value(self) -> None:
        """The original value is recovered from its key."""
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert key_value(sort_key(moment)) is moment
        assert key_value(sort_key(42)) == 42

    def test_mixed_datetimes_in_tree(self) -> None:
        """A tree accepts naive and aware datetimes side by side."""
        tree = BTree(max_keys=4)
        values = [datetime(2024, 1, d) for d in range(1, 8)]
        values += [datetime(2024, 1, d, tzinfo=timezone.utc) for d in range(1, 8)]
        random.Random(3).shuffle(values)

        for v in values:
            assert tree.insert(sort_key(v), v)

        stored = [value for _, value in tree.scan_all()]
        assert stored[:7] == [datetime(2024, 1, d) for d in range(1, 8)]
        assert stored[7:] == [datetime(2024, 1, d, tzinfo=timezone.utc) for d in range(1, 8)]

    def test_composite_key_prefix(self) -> None:
        """A composite key starts with the key of its leading values."""
        full = composite_key(("smith", "john", 7))

        assert full[:1] == composite_key(("smith",))


@pytest.mark.unit
class TestBTree:
    """Tests for BTree."""

    @pytest.fixture
    def tree(self) -> BTree:
        """Create a small-fanout tree so splits happen early."""
        return BTree(max_keys=4)

    def test_empty_tree(self, tree: BTree) -> None:
        """A new tree is a single empty leaf."""
        assert len(tree) == 0
        assert tree.height == 1
        assert tree.last_key() is None
        assert list(tree.scan_all()) == []

    def test_min_fanout(self) -> None:
        """Trees need at least three keys per node."""
        with pytest.raises(ValueError):
            BTree(max_keys=2)

    def test_insert_and_search(self, tree: BTree) -> None:
        """Inserted keys can be found."""
        assert tree.insert(sort_key(10), "ten") is True

        assert tree.search(sort_key(10)) == (True, "ten")
        assert tree.search(sort_key(11)) == (False, None)
        assert tree.contains(sort_key(10))

    def test_duplicate_rejected(self, tree: BTree) -> None:
        """Keys are unique."""
        tree.insert(sort_key(1), "a")

        assert tree.insert(sort_key(1), "b") is False
        assert tree.search(sort_key(1)) == (True, "a")
        assert len(tree) == 1

    def test_replace(self, tree: BTree) -> None:
        """replace updates existing keys only."""
        tree.insert(sort_key(1), "a")

        assert tree.replace(sort_key(1), "b") is True
        assert tree.replace(sort_key(2), "c") is False
        assert tree.search(sort_key(1)) == (True, "b")

    def test_splits_keep_everything_findable(self, tree: BTree) -> None:
        """Many inserts grow the tree and keep all keys reachable."""
        values = list(range(200))
        random.Random(7).shuffle(values)
        for v in values:
            assert tree.insert(sort_key(v), v)

        assert len(tree) == 200
        assert tree.height > 2
        for v in range(200):
            assert tree.search(sort_key(v)) == (True, v)

    def test_scan_all_in_order(self, tree: BTree) -> None:
        """Scans yield keys in ascending order."""
        for v in [5, 3, 9, 1, 7, 2, 8, 6, 4, 0]:
            tree.insert(sort_key(v), v)

        assert [value for _, value in tree.scan_all()] == list(range(10))

    def test_delete(self, tree: BTree) -> None:
        """Deleted keys disappear; deleting again reports False."""
        for v in range(20):
            tree.insert(sort_key(v), v)

        assert tree.delete(sort_key(5)) is True
        assert tree.delete(sort_key(5)) is False
        assert not tree.contains(sort_key(5))
        assert len(tree) == 19
        assert 5 not in [value for _, value in tree.scan_all()]

    def test_last_key_skips_emptied_leaves(self, tree: BTree) -> None:
        """last_key finds the maximum even after the rightmost leaves empty."""
        for v in range(30):
            tree.insert(sort_key(v), v)
        for v in range(10, 30):
            tree.delete(sort_key(v))

        assert tree.last_key() == sort_key(9)

        for v in range(10):
            tree.delete(sort_key(v))
        assert tree.last_key() is None

    def test_prefix_scan(self, tree: BTree) -> None:
        """Prefix scans return exactly the entries sharing the prefix."""
        people = [("smith", 1), ("jones", 2), ("smith", 3), ("adams", 4), ("smith", 5), ("jones", 6)]
        for name, pk in people:
            tree.insert(composite_key((name, pk)), pk)

        found = [pk for _, pk in tree.prefix_scan(composite_key(("smith",)))]

        assert found == [1, 3, 5]
        assert list(tree.prefix_scan(composite_key(("brown",)))) == []

    def test_prefix_scan_across_leaves(self, tree: BTree) -> None:
        """Prefix scans follow leaf links."""
        for pk in range(50):
            tree.insert(composite_key(("bbb" if pk % 2 else "aaa", pk)), pk)

        found = [pk for _, pk in tree.prefix_scan(composite_key(("bbb",)))]

        assert found == list(range(1, 50, 2))

    def test_clear(self, tree: BTree) -> None:
        """clear drops every entry."""
        for v in range(10):
            tree.insert(sort_key(v), v)
        tree.clear()

        assert len(tree) == 0
        assert tree.height == 1
