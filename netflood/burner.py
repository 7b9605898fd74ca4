"""Continuous download engine.

A distributor thread feeds the task list into a bounded queue in a loop, N
worker threads pull from it and fetch, and a sampler thread snapshots the
throughput once a second. Setting the stop event ends the run: the queue is
closed, each worker finishes the fetch it is in, and a final summary is
written once every worker has exited.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from netflood.errors import EmptyTaskSet, FetchError
from netflood.fetcher import DEFAULT_TIMEOUT, fetch
from netflood.reporter import StatsReporter
from netflood.speed import ByteCounter, SpeedSampler, SpeedSink, summary_lines
from netflood.tasks import DownloadTask
from netflood.timegate import TimeGate

logger = logging.getLogger("netflood")

DEFAULT_WORKERS = 12
DEFAULT_SPEED_FILE = "./speed"
PUT_POLL = 0.2
GATE_RECHECK = 30.0

_CLOSED = None


class TaskDistributor:
    """Cycles the task list into ``work_queue`` until ``stop`` is set."""

    def __init__(
        self,
        tasks: Sequence[DownloadTask],
        work_queue: queue.Queue,
        consumers: int,
        gate: Optional[TimeGate] = None,
    ):
        if not tasks:
            raise EmptyTaskSet()
        self.tasks = tuple(tasks)
        self.work_queue = work_queue
        self.consumers = consumers
        self.gate = gate or TimeGate()
        self.enqueued = 0

    def _wait_for_window(self, stop: threading.Event) -> bool:
        """Block while outside the time gate. Returns False if stopped meanwhile."""
        announced = False
        while not self.gate.is_in_range():
            if not announced:
                wait = self.gate.wait_until_next()
                logger.info(
                    f"[gate] outside {self.gate}, next window opens in {wait} min "
                    f"(at {self.gate.next_start():%H:%M})"
                )
                announced = True
            if stop.wait(GATE_RECHECK):
                return False
        if announced:
            logger.info("[gate] window open, resuming downloads")
        return True

    def _put(self, task: DownloadTask, stop: threading.Event) -> bool:
        while not stop.is_set():
            try:
                self.work_queue.put(task, timeout=PUT_POLL)
                self.enqueued += 1
                return True
            except queue.Full:
                continue
        return False

    def close(self) -> None:
        """Drop buffered tasks and wake every consumer with a close marker."""
        while True:
            try:
                self.work_queue.get_nowait()
            except queue.Empty:
                break
        for _ in range(self.consumers):
            self.work_queue.put_nowait(_CLOSED)

    def run(self, stop: threading.Event) -> None:
        try:
            while not stop.is_set():
                for task in self.tasks:
                    if not self._wait_for_window(stop) or not self._put(task, stop):
                        return
        finally:
            self.close()


class Burner:
    """Runs the worker pool against a fixed task list until stopped."""

    def __init__(
        self,
        tasks: Sequence[DownloadTask],
        workers: int = DEFAULT_WORKERS,
        gate: Optional[TimeGate] = None,
        speed_file: str = DEFAULT_SPEED_FILE,
        reporter: Optional[StatsReporter] = None,
        timeout: float = DEFAULT_TIMEOUT,
        fetcher: Callable[..., int] = fetch,
    ):
        if not tasks:
            raise EmptyTaskSet()
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.tasks: List[DownloadTask] = list(tasks)
        self.workers = workers
        self.gate = gate or TimeGate()
        self.speed_file = speed_file
        self.reporter = reporter
        self.timeout = timeout
        self.fetcher = fetcher

        self.counter = ByteCounter()
        self.started_at: Optional[datetime] = None
        self.queue: Optional[queue.Queue] = None

    # accessors handed to the stats reporter
    def bytes_downloaded(self) -> int:
        return self.counter.value

    def start_time(self) -> datetime:
        return self.started_at or datetime.now()

    def time_label(self) -> str:
        return str(self.gate)

    def _work(self, worker_id: int, stop: threading.Event) -> None:
        while True:
            task = self.queue.get()
            if task is _CLOSED or stop.is_set():
                return
            # in-flight fetches are never interrupted by the stop event
            try:
                status = self.fetcher(task, self.counter, timeout=self.timeout)
            except FetchError as e:
                logger.warning(f"[worker {worker_id}] download failed {task.url} via {task.ip}: {e}")
                continue
            if status != 200:
                continue
            logger.debug(f"[worker {worker_id}] download complete {task.url}")

    def _spawn(self, target, name: str, *args) -> threading.Thread:
        t = threading.Thread(target=target, args=args, name=name, daemon=True)
        t.start()
        return t

    def run(self, stop: threading.Event) -> int:
        """Run until ``stop`` is set and every worker has drained. Returns total bytes."""
        self.queue = queue.Queue(maxsize=self.workers * 2)
        distributor = TaskDistributor(self.tasks, self.queue, self.workers, self.gate)
        self.started_at = datetime.now()

        with SpeedSink(self.speed_file) as sink:
            sampler = SpeedSampler(self.counter, sink)
            background = [
                self._spawn(sampler.run, "speed-sampler", stop),
                self._spawn(distributor.run, "task-distributor", stop),
            ]
            if self.reporter is not None:
                background.append(
                    self._spawn(
                        self.reporter.start_reporting,
                        "stats-reporter",
                        stop,
                        self.bytes_downloaded,
                        self.start_time,
                        self.time_label,
                    )
                )

            pool = [self._spawn(self._work, f"worker-{i}", i, stop) for i in range(self.workers)]
            for t in pool:
                t.join()
            for t in background:
                t.join()

            logger.info("saving final statistics...")
            final = summary_lines(self.counter.value)
            print(final, end="", flush=True)
            sink.append(final)

        return self.counter.value
