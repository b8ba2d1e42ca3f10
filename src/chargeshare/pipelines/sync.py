from __future__ import annotations
import threading
from typing import Optional


class RunBarrier:
    """
    End-of-run rendezvous shared by reference between the workers of a run.

    Every worker calls arrive() once its events are done; the thread that
    merges results calls wait() and is released when all parties arrived.
    """

    def __init__(self, parties: int):
        if parties < 0:
            raise ValueError(f"parties must be >= 0, got {parties}")
        self._parties = int(parties)
        self._arrived = 0
        self._cond = threading.Condition()

    @property
    def parties(self) -> int:
        return self._parties

    @property
    def arrived(self) -> int:
        with self._cond:
            return self._arrived

    @property
    def complete(self) -> bool:
        with self._cond:
            return self._arrived >= self._parties

    def arrive(self) -> int:
        """Signal one worker's completion; returns the updated count."""
        with self._cond:
            if self._arrived >= self._parties:
                raise RuntimeError(f"RunBarrier already released ({self._parties} parties)")
            self._arrived += 1
            if self._arrived >= self._parties:
                self._cond.notify_all()
            return self._arrived

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every party arrived; False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._arrived >= self._parties, timeout=timeout)

    def reset(self, parties: Optional[int] = None) -> None:
        with self._cond:
            if parties is not None:
                self._parties = int(parties)
            self._arrived = 0
