"""Byte accounting and the once-a-second speed snapshot."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

MB = 1024 * 1024
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ByteCounter:
    """Shared running total of bytes received by all workers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def add(self, n: int) -> None:
        if n < 0:
            raise ValueError("byte count cannot decrease")
        with self._lock:
            self._value += n

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(frozen=True)
class SpeedSample:
    timestamp: datetime
    instant_mbps: float
    average_mbps: float
    total_mb: float

    def console_line(self) -> str:
        return (
            f"[速度统计] 当前速度: {self.instant_mbps:.2f} MB/s | "
            f"平均速度: {self.average_mbps:.2f} MB/s | 总下载: {self.total_mb:.2f} MB"
        )

    def record_line(self) -> str:
        return (
            f"{self.timestamp.strftime(TIMESTAMP_FORMAT)} | 当前速度: {self.instant_mbps:.2f} MB/s | "
            f"平均速度: {self.average_mbps:.2f} MB/s | 总下载: {self.total_mb:.2f} MB\n"
        )


def summary_lines(total_bytes: int, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    total_mb = total_bytes / MB
    return (
        f"{stamp} | ========== 下载结束 ==========\n"
        f"{stamp} | 总下载量: {total_mb:.2f} MB ({total_mb / 1024:.2f} GB)\n"
    )


class SpeedSink:
    """Single-record file holding the latest speed line.

    The sampler and the final summary both write here, so every
    truncate/write/flush sequence happens under one lock.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._file = open(path, "w", encoding="utf-8")

    def overwrite(self, text: str) -> None:
        with self._lock:
            self._file.seek(0)
            self._file.truncate()
            self._file.write(text)
            self._file.flush()

    def append(self, text: str) -> None:
        with self._lock:
            self._file.seek(0, 2)
            self._file.write(text)
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class SpeedSampler:
    """Samples the byte counter every ``period`` seconds until stopped."""

    def __init__(
        self,
        counter: ByteCounter,
        sink: SpeedSink,
        period: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.counter = counter
        self.sink = sink
        self.period = period
        self._clock = clock
        self._started = clock()
        self._last_bytes = 0

    def sample(self, now: Optional[datetime] = None) -> SpeedSample:
        current = self.counter.value
        delta = current - self._last_bytes
        self._last_bytes = current

        elapsed = self._clock() - self._started
        average = current / MB / elapsed if elapsed > 0 else 0.0
        return SpeedSample(
            timestamp=now or datetime.now(),
            instant_mbps=delta / MB / self.period,
            average_mbps=average,
            total_mb=current / MB,
        )

    def tick(self) -> SpeedSample:
        s = self.sample()
        print(s.console_line(), flush=True)
        self.sink.overwrite(s.record_line())
        return s

    def run(self, stop: threading.Event) -> None:
        while not stop.wait(self.period):
            self.tick()
