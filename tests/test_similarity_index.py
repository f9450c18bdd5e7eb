"""Tests for the similarity index realizations."""

import imagehash
import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from ilytix.dedup.index import (
    BruteForceIndex,
    IndexKind,
    Match,
    NSWIndex,
    build_index,
    ensure_queryable,
)
from ilytix.errors import DuplicateKeyError, InsufficientCorpus

from conftest import bits_with_flips


def random_bits(rng: np.random.Generator) -> imagehash.ImageHash:
    return imagehash.ImageHash(rng.integers(0, 2, size=(16, 16)).astype(bool))


@pytest.fixture(params=[IndexKind.EXACT, IndexKind.NSW])
def index(request):
    return build_index(request.param, capacity=8)


class TestIndexContract:
    def test_add_and_get(self, index):
        bits = bits_with_flips([3, 4])
        index.add(7, bits)

        assert index.contains(7)
        assert 7 in index
        assert not index.contains(8)
        assert index.get(7) == bits
        assert len(index) == 1

    def test_add_duplicate_id_rejected(self, index):
        index.add(1, bits_with_flips([]))
        with pytest.raises(DuplicateKeyError):
            index.add(1, bits_with_flips([5]))
        # original entry untouched
        assert index.get(1) == bits_with_flips([])
        assert index.size == 1

    def test_get_missing_id(self, index):
        with pytest.raises(KeyError):
            index.get(42)

    def test_ids_may_have_gaps(self, index):
        index.add(0, bits_with_flips([]))
        index.add(5, bits_with_flips([1]))
        index.add(9, bits_with_flips([1, 2]))

        assert [m.id for m in index.query(bits_with_flips([]), 3)] == [0, 5, 9]

    def test_query_orders_by_distance_then_id(self, index):
        index.add(4, bits_with_flips([1, 2]))
        index.add(2, bits_with_flips([1]))
        index.add(3, bits_with_flips([9]))
        index.add(1, bits_with_flips([1, 2, 3]))

        result = index.query(bits_with_flips([]), 4)

        assert result == [Match(2, 1), Match(3, 1), Match(4, 2), Match(1, 3)]

    def test_query_limits_to_k(self, index):
        for i in range(5):
            index.add(i, bits_with_flips(range(i)))
        assert [m.id for m in index.query(bits_with_flips([]), 2)] == [0, 1]
        assert index.query(bits_with_flips([]), 0) == []

    def test_query_empty_index(self, index):
        assert index.query(bits_with_flips([]), 5) == []

    def test_radius_is_inclusive(self, index):
        for i in range(6):
            index.add(i, bits_with_flips(range(i)))

        result = index.radius(bits_with_flips([]), 3.0)

        assert [m.id for m in result] == [0, 1, 2, 3]
        assert all(m.distance <= 3 for m in result)

    def test_wrong_fingerprint_length(self, index):
        with pytest.raises(ValueError):
            index.add(0, imagehash.ImageHash(np.zeros((8, 8), dtype=bool)))

    def test_reserve_then_grow(self, index):
        index.reserve(2)
        assert index.capacity >= 2
        for i in range(20):
            index.add(i, bits_with_flips([i]))
        assert index.size == 20
        assert index.capacity >= 20
        assert index.get(19) == bits_with_flips([19])

    def test_reserve_never_shrinks(self):
        index = BruteForceIndex()
        index.reserve(10)
        index.reserve(3)
        assert index.capacity == 10

    def test_dimensions(self, index):
        assert index.dimensions == 256


class TestEnsureQueryable:
    @pytest.mark.parametrize("count", [0, 1])
    def test_too_small_index(self, count):
        index = build_index(IndexKind.EXACT)
        for i in range(count):
            index.add(i, bits_with_flips([]))
        with pytest.raises(InsufficientCorpus):
            ensure_queryable(index)

    def test_two_items_is_enough(self):
        index = build_index(IndexKind.EXACT)
        index.add(0, bits_with_flips([]))
        index.add(1, bits_with_flips([]))
        ensure_queryable(index)


class TestBruteForceIndex:
    def test_exact_flag(self):
        assert BruteForceIndex.exact is True
        assert build_index(IndexKind.EXACT).exact

    @settings(max_examples=25, deadline=None)
    @given(seed=st.integers(min_value=0, max_value=10_000), k=st.integers(min_value=1, max_value=40))
    def test_query_matches_naive_sort(self, seed, k):
        rng = np.random.default_rng(seed)
        index = BruteForceIndex()
        stored = {}
        for item_id in rng.permutation(30):
            bits = random_bits(rng)
            stored[int(item_id)] = bits
            index.add(int(item_id), bits)
        query = random_bits(rng)

        expected = sorted((query - bits, item_id) for item_id, bits in stored.items())[:k]

        assert index.query(query, k) == [Match(i, d) for d, i in expected]


class TestNSWIndex:
    def test_not_exact(self):
        assert NSWIndex.exact is False
        assert not build_index(IndexKind.NSW).exact

    def test_full_beam_is_exact(self):
        """With the beam as wide as the index every node is visited."""
        rng = np.random.default_rng(0)
        exact = BruteForceIndex()
        approx = NSWIndex(connectivity=4, ef_search=8)
        for i in range(150):
            bits = random_bits(rng)
            exact.add(i, bits)
            approx.add(i, bits)
        query = random_bits(rng)

        assert approx.query(query, len(approx)) == exact.query(query, len(exact))

    def test_results_are_ordered_true_distances(self):
        rng = np.random.default_rng(1)
        index = NSWIndex(connectivity=6, ef_search=10)
        stored = {}
        for i in range(200):
            stored[i] = random_bits(rng)
            index.add(i, stored[i])
        query = random_bits(rng)

        result = index.query(query, 10)

        assert len(result) == 10
        assert result == sorted(result, key=lambda m: (m.distance, m.id))
        for match in result:
            assert match.distance == query - stored[match.id]

    def test_radius_with_wide_beam_is_exact(self):
        rng = np.random.default_rng(2)
        base = rng.integers(0, 2, size=256).astype(bool)
        exact = BruteForceIndex()
        approx = NSWIndex(connectivity=4, ef_search=256)
        for i in range(100):
            bits = random_bits(rng)
            exact.add(i, bits)
            approx.add(i, bits)
        for i, flips in enumerate([[0], [0, 1], [5, 6, 7], [1, 2, 3, 4]], start=500):
            bits = bits_with_flips(flips, base)
            exact.add(i, bits)
            approx.add(i, bits)
        query = bits_with_flips([], base)

        assert approx.radius(query, 3.0) == exact.radius(query, 3.0)
        assert [m.id for m in exact.radius(query, 3.0)] == [500, 501, 502]

    def test_radius_subset_of_exact(self):
        rng = np.random.default_rng(3)
        exact = BruteForceIndex()
        approx = NSWIndex(connectivity=4, ef_search=4)
        base = rng.integers(0, 2, size=256).astype(bool)
        for i in range(120):
            flips = rng.choice(256, size=int(rng.integers(0, 12)), replace=False)
            bits = bits_with_flips(flips, base)
            exact.add(i, bits)
            approx.add(i, bits)
        query = bits_with_flips([], base)

        approx_result = approx.radius(query, 6.0)
        exact_result = exact.radius(query, 6.0)

        assert set(approx_result) <= set(exact_result)
        assert approx_result == sorted(approx_result, key=lambda m: (m.distance, m.id))

    def test_invalid_connectivity(self):
        with pytest.raises(ValueError):
            NSWIndex(connectivity=0)


class TestBuildIndex:
    def test_build_index_reserves(self):
        index = build_index(IndexKind.EXACT, capacity=16)
        assert isinstance(index, BruteForceIndex)
        assert index.capacity == 16
        assert index.size == 0

    def test_build_nsw(self):
        index = build_index(IndexKind.NSW, capacity=4, connectivity=3, ef_search=5)
        assert isinstance(index, NSWIndex)
        assert index.connectivity == 3
        assert index.ef_search == 5
