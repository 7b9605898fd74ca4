"""Command-line entry point for netflood.

Use only against networks and servers you own or are explicitly authorized
to load.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from typing import List

from netflood import __version__
from netflood.burner import DEFAULT_SPEED_FILE, DEFAULT_WORKERS, Burner
from netflood.errors import ConfigurationError, TaskSourceError
from netflood.fetcher import DEFAULT_TIMEOUT
from netflood.reporter import StatsReporter
from netflood.tasks import DownloadTask, load_tasks_from_api, load_tasks_from_file
from netflood.timegate import TimeGate

logger = logging.getLogger("netflood")

URL_PREVIEW = 60


class ShutdownHandler:
    """First signal requests a graceful drain, the second exits immediately."""

    def __init__(self, stop: threading.Event):
        self.stop = stop
        self.signals = 0

    def __call__(self, signum, frame):
        self.signals += 1
        if self.signals == 1:
            logger.info("stop requested, waiting for in-flight downloads to finish...")
            logger.info("press Ctrl+C again to force exit")
            self.stop.set()
            return
        logger.warning("forced exit")
        os._exit(1)

    def install(self):
        signal.signal(signal.SIGINT, self)
        signal.signal(signal.SIGTERM, self)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="netflood",
        description="Continuously download URLs over connections pinned to given IPs.",
    )
    p.add_argument("-a", "--api", help="URL of the task listing endpoint (one '<ip>,<url>' per line)")
    p.add_argument("-f", "--file", help="Read tasks from a local file instead of --api")
    p.add_argument(
        "-w", "--workers", type=int, default=DEFAULT_WORKERS,
        help=f"Number of concurrent downloads (default: {DEFAULT_WORKERS})",
    )
    p.add_argument(
        "-t", "--time", default="", metavar="RANGES",
        help="Daily download windows, e.g. 12:00-13:00,23:00-01:00 (default: always)",
    )
    p.add_argument("--stats-api", help="Endpoint to POST run statistics to every 10s")
    p.add_argument(
        "--speed-file", default=DEFAULT_SPEED_FILE,
        help=f"File holding the latest speed sample (default: {DEFAULT_SPEED_FILE})",
    )
    p.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT,
        help=f"Connect/read/overall timeout per download in seconds (default: {DEFAULT_TIMEOUT:g})",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log every completed download")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def load_tasks(args: argparse.Namespace) -> List[DownloadTask]:
    if args.file:
        logger.info(f"loading tasks from file {args.file}")
        return load_tasks_from_file(args.file)
    logger.info(f"loading tasks from API {args.api}")
    return load_tasks_from_api(args.api, timeout=args.timeout)


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if not args.file and not args.api:
        parser.print_usage()
        logger.error("one of --file or --api is required")
        return 2
    if args.workers <= 0:
        logger.error("--workers must be > 0")
        return 2
    if args.timeout <= 0:
        logger.error("--timeout must be > 0")
        return 2

    try:
        gate = TimeGate.parse(args.time)
    except ConfigurationError as e:
        logger.error(f"invalid --time: {e}")
        logger.error("example: --time 12:00-13:00,14:00-15:00")
        return 2
    logger.info(f"config: workers={args.workers}, window={gate}{' (daily)' if gate.enabled else ''}")

    try:
        tasks = load_tasks(args)
        reporter = StatsReporter(args.stats_api) if args.stats_api else None
        burner = Burner(
            tasks,
            workers=args.workers,
            gate=gate,
            speed_file=args.speed_file,
            reporter=reporter,
            timeout=args.timeout,
        )
    except (ConfigurationError, TaskSourceError) as e:
        logger.error(f"failed to load tasks: {e}")
        return 2

    logger.info(f"loaded {len(tasks)} task(s)")
    for i, task in enumerate(tasks, 1):
        url = task.url if len(task.url) <= URL_PREVIEW else task.url[:URL_PREVIEW] + "..."
        logger.info(f"  task {i}: IP={task.ip}, URL={url}")
    if reporter is not None:
        logger.info(f"reporting stats to {args.stats_api} as {reporter.hostname}")

    stop = threading.Event()
    ShutdownHandler(stop).install()

    logger.info(f"starting {args.workers} workers, speed snapshot in {args.speed_file}")
    logger.info("press Ctrl+C to stop gracefully")
    try:
        burner.run(stop)
    except OSError as e:
        logger.error(f"run failed: {e}")
        return 1

    logger.info("downloads stopped, exiting")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
