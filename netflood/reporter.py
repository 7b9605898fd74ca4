"""Periodic push of run statistics to a remote endpoint."""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

import requests

from netflood.errors import ReportDeliveryError
from netflood.speed import MB

logger = logging.getLogger("netflood")

REPORT_INTERVAL = 10.0


@dataclass
class StatsData:
    name: str
    speed: float  # average MB/s
    total: float  # MB
    time: str  # window label


def _hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


class StatsReporter:
    """Posts a summary every ``interval`` seconds. One attempt per tick, no retry."""

    def __init__(
        self,
        api_url: str,
        hostname: Optional[str] = None,
        timeout: float = 10.0,
        interval: float = REPORT_INTERVAL,
    ):
        self.api_url = api_url
        self.hostname = hostname or _hostname()
        self.timeout = timeout
        self.interval = interval

    def report(self, avg_speed: float, total_mb: float, time_label: str) -> StatsData:
        data = StatsData(name=self.hostname, speed=avg_speed, total=total_mb, time=time_label)
        try:
            resp = requests.post(self.api_url, json=asdict(data), timeout=self.timeout)
        except requests.RequestException as e:
            raise ReportDeliveryError(f"failed to send report: {e}") from e
        if not 200 <= resp.status_code < 300:
            raise ReportDeliveryError(f"server returned status {resp.status_code}")
        return data

    def report_once(
        self,
        get_bytes: Callable[[], int],
        get_start_time: Callable[[], datetime],
        get_label: Callable[[], str],
    ) -> bool:
        elapsed = max((datetime.now() - get_start_time()).total_seconds(), 1.0)
        total_mb = get_bytes() / MB
        avg = total_mb / elapsed
        label = get_label()
        try:
            self.report(avg, total_mb, label)
        except ReportDeliveryError as e:
            logger.warning(f"[report] failed: {e}")
            return False
        logger.info(
            f"[report] ok: host={self.hostname}, avg={avg:.2f} MB/s, total={total_mb:.2f} MB, window={label}"
        )
        return True

    def start_reporting(
        self,
        stop: threading.Event,
        get_bytes: Callable[[], int],
        get_start_time: Callable[[], datetime],
        get_label: Callable[[], str],
    ) -> None:
        while not stop.wait(self.interval):
            self.report_once(get_bytes, get_start_time, get_label)
