"""Tests for cohort_ecology.rng and cohort_ecology.ids — RNG streams and cohort IDs."""

import threading

import numpy as np
import pytest

from cohort_ecology.ids import CohortIdAllocator
from cohort_ecology.rng import (
    create_rng_hierarchy,
    get_cell_rng,
    restore_rng_state,
    rng_state_snapshot,
)


class TestCreateRngHierarchy:
    def test_returns_correct_keys(self):
        rngs = create_rng_hierarchy(42, n_cells=5)
        assert 'global' in rngs
        for i in range(5):
            assert f'cell_{i}' in rngs
        assert len(rngs) == 5 + 1

    def test_generators_are_independent(self):
        """Different streams produce different sequences."""
        rngs = create_rng_hierarchy(42, n_cells=4)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals)

    def test_reproducibility(self):
        rngs1 = create_rng_hierarchy(42, n_cells=3)
        rngs2 = create_rng_hierarchy(42, n_cells=3)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(50),
                                          rngs2[name].random(50))

    def test_different_seeds_differ(self):
        rngs1 = create_rng_hierarchy(42, n_cells=2)
        rngs2 = create_rng_hierarchy(43, n_cells=2)
        assert not np.array_equal(rngs1['cell_0'].random(10),
                                  rngs2['cell_0'].random(10))

    def test_zero_cells(self):
        rngs = create_rng_hierarchy(42, n_cells=0)
        assert list(rngs) == ['global']


class TestGetCellRng:
    def test_returns_stream(self):
        rngs = create_rng_hierarchy(1, n_cells=3)
        assert get_cell_rng(rngs, 2) is rngs['cell_2']

    def test_missing_cell_raises(self):
        rngs = create_rng_hierarchy(1, n_cells=3)
        with pytest.raises(KeyError, match="3 cell streams"):
            get_cell_rng(rngs, 7)


class TestCheckpointing:
    def test_snapshot_and_restore_replays(self):
        rngs = create_rng_hierarchy(7, n_cells=2)
        rngs['cell_1'].random(13)
        snapshot = rng_state_snapshot(rngs)
        expected = rngs['cell_1'].random(20)

        restore_rng_state(rngs, snapshot)
        np.testing.assert_array_equal(rngs['cell_1'].random(20), expected)

    def test_restore_unknown_stream_raises(self):
        rngs = create_rng_hierarchy(7, n_cells=1)
        states = rng_state_snapshot(create_rng_hierarchy(7, n_cells=3))
        with pytest.raises(KeyError, match="cell_2"):
            restore_rng_state(rngs, states)


# ── cohort ID allocation ──────────────────────────────────────────────

class TestCohortIdAllocator:
    def test_monotonic_from_start(self):
        ids = CohortIdAllocator(start=10)
        assert [ids.next_id() for _ in range(3)] == [10, 11, 12]
        assert ids.issued == 3

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            CohortIdAllocator(start=-1)

    def test_unique_across_threads(self):
        ids = CohortIdAllocator()
        issued = []
        lock = threading.Lock()

        def worker():
            local = [ids.next_id() for _ in range(500)]
            with lock:
                issued.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(issued) == 4000
        assert len(set(issued)) == 4000
        assert ids.issued == 4000
