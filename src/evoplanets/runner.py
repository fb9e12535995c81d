"""Run a :class:`PlanetGA` on a background worker.

One worker thread owns the algorithm.  The foreground only ever reads the
latest :class:`PopulationSnapshot`, published under a lock after every
completed step, so it never observes a half-built generation.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from loguru import logger

from evoplanets.errors import GAStateError
from evoplanets.genetic import GAState, PlanetGA, PopulationSnapshot

__all__ = ["EvolutionRunner"]


class EvolutionRunner:
    """Single-worker executor around one genetic algorithm.

    ``request_stop()`` sets a cooperative flag that is checked between
    individuals during initialisation and between epochs in
    :meth:`start_epochs`; an operator attempt that is already running
    always finishes.
    """

    def __init__(self, ga: PlanetGA):
        self.ga = ga
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="evoplanets-runner")
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._snapshot = ga.snapshot()
        self._pending: Optional[Future] = None

    # ------------------------------------------------------------------
    # snapshots

    def snapshot(self) -> PopulationSnapshot:
        with self._lock:
            return self._snapshot

    def _publish(self) -> None:
        snapshot = self.ga.snapshot()
        with self._lock:
            self._snapshot = snapshot

    # ------------------------------------------------------------------
    # control

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        logger.info("[EvolutionRunner] stop requested")
        self._stop.set()

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def _submit(self, fn, *args) -> Future:
        if self.busy:
            raise GAStateError("the runner is already working")
        self._stop.clear()
        self._pending = self._executor.submit(fn, *args)
        return self._pending

    def start_initialization(self) -> Future:
        """Initialise the population in the background.

        The future resolves to ``True`` when the algorithm reached ``READY``
        and ``False`` when it was stopped first.
        """

        return self._submit(self._initialize)

    def _initialize(self) -> bool:
        while not self._stop.is_set():
            more = self.ga.initialize()
            self._publish()
            if not more:
                return self.ga.state is GAState.READY
        logger.info(f"[EvolutionRunner] initialisation stopped after "
                    f"{self._snapshot.initialized} planets")
        return False

    def start_epoch(self) -> Future:
        """Run a single epoch; the future resolves to the new snapshot."""

        return self._submit(self._epoch)

    def _epoch(self) -> PopulationSnapshot:
        self.ga.loop()
        self._publish()
        return self.snapshot()

    def start_epochs(self, count: Optional[int] = None) -> Future:
        """Run epochs until ``count`` are done, a stop request, or termination.

        The future resolves to the number of epochs completed.
        """

        return self._submit(self._epochs, count)

    def _epochs(self, count: Optional[int]) -> int:
        done = 0
        while not self._stop.is_set() and self.ga.state is GAState.READY:
            if count is not None and done >= count:
                break
            self.ga.loop()
            self._publish()
            done += 1
        return done

    def shutdown(self, wait: bool = True) -> None:
        self._stop.set()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "EvolutionRunner":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
