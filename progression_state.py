"""Story progression memory — last market cap, last beat, beat counter.

Lives in process memory only; a restart begins the story again.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace

log = logging.getLogger("narrative")


# ---------------------------------------------------------------------------
# State record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgressionState:
    last_market_cap: float = 0.0
    last_beat: str = ""
    beat_count: int = 0

    def to_dict(self) -> dict:
        return {
            "lastMarketCap": self.last_market_cap,
            "lastBeat": self.last_beat,
            "beatCount": self.beat_count,
        }


def advance(state: ProgressionState, market_cap: float, narrative: str) -> ProgressionState:
    """Return the state after one successful beat. `state` is left untouched."""
    return replace(
        state,
        last_market_cap=market_cap,
        last_beat=narrative,
        beat_count=state.beat_count + 1,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class _Cycle:
    """Handle for one locked read-generate-commit cycle."""

    def __init__(self, state: ProgressionState):
        self.state = state
        self.committed: ProgressionState | None = None

    def commit(self, market_cap: float, narrative: str) -> ProgressionState:
        if self.committed is not None:
            raise RuntimeError("cycle already committed")
        self.committed = advance(self.state, market_cap, narrative)
        return self.committed


class ProgressionStore:
    """Single-writer cell holding the current ProgressionState.

    Cycles run under one lock so each sees the baseline the previous cycle
    committed, and no beat is counted twice or lost.
    """

    def __init__(self, initial: ProgressionState | None = None):
        self._lock = threading.Lock()
        self._state = initial or ProgressionState()

    def snapshot(self) -> ProgressionState:
        with self._lock:
            return self._state

    @contextmanager
    def cycle(self):
        """Hold the lock for a full cycle; apply the commit only on clean exit."""
        with self._lock:
            handle = _Cycle(self._state)
            yield handle
            if handle.committed is not None:
                self._state = handle.committed
                log.info("progression: beat #%d committed (mc=%.2f)",
                         handle.committed.beat_count, handle.committed.last_market_cap)

    def reset(self):
        with self._lock:
            self._state = ProgressionState()
        log.info("progression: state reset")
