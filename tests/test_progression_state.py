"""Tests for progression_state.py.

advance() purity, store commit semantics, and serialization under threads.
"""

import threading
import time

import pytest

from progression_state import ProgressionState, ProgressionStore, advance


class TestAdvance:
    def test_defaults(self):
        s = ProgressionState()
        assert s.last_market_cap == 0
        assert s.last_beat == ""
        assert s.beat_count == 0

    def test_advance_sets_fields(self):
        s = advance(ProgressionState(), 52_000.0, "Sora wakes.")
        assert s.last_market_cap == 52_000.0
        assert s.last_beat == "Sora wakes."
        assert s.beat_count == 1

    def test_advance_is_pure(self):
        start = ProgressionState(last_market_cap=10.0, last_beat="a", beat_count=3)
        advance(start, 20.0, "b")
        assert start == ProgressionState(last_market_cap=10.0, last_beat="a", beat_count=3)

    def test_same_inputs_increment_by_exactly_one_each(self):
        s1 = advance(ProgressionState(), 100.0, "beat")
        s2 = advance(s1, 100.0, "beat")
        assert s1.beat_count == 1
        assert s2.beat_count == 2

    def test_to_dict(self):
        s = ProgressionState(last_market_cap=1.5, last_beat="x", beat_count=2)
        assert s.to_dict() == {"lastMarketCap": 1.5, "lastBeat": "x", "beatCount": 2}


class TestStore:
    def test_commit_applies_on_clean_exit(self, store):
        with store.cycle() as c:
            assert c.state.beat_count == 0
            c.commit(41_000.0, "Iron gate.")
        snap = store.snapshot()
        assert snap.beat_count == 1
        assert snap.last_beat == "Iron gate."
        assert snap.last_market_cap == 41_000.0

    def test_no_commit_leaves_state(self, store):
        with store.cycle():
            pass
        assert store.snapshot() == ProgressionState()

    def test_exception_discards_commit(self, store):
        with pytest.raises(ValueError):
            with store.cycle() as c:
                c.commit(1.0, "lost")
                raise ValueError("boom")
        assert store.snapshot() == ProgressionState()

    def test_double_commit_rejected(self, store):
        with pytest.raises(RuntimeError):
            with store.cycle() as c:
                c.commit(1.0, "a")
                c.commit(2.0, "b")
        assert store.snapshot().beat_count == 0

    def test_reset(self):
        store = ProgressionStore(ProgressionState(5.0, "x", 7))
        store.reset()
        assert store.snapshot() == ProgressionState()

    def test_concurrent_cycles_no_lost_updates(self, store):
        n = 25
        seen_counts = []

        def _worker(i):
            with store.cycle() as c:
                before = c.state.beat_count
                time.sleep(0.001)
                c.commit(float(i), f"beat {i}")
                seen_counts.append(before)

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.snapshot().beat_count == n
        # each cycle saw a distinct baseline
        assert sorted(seen_counts) == list(range(n))
