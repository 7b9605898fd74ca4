"""netflood: continuous IP-pinned download traffic generator."""

__version__ = "1.0.0"

from netflood.burner import Burner, TaskDistributor
from netflood.errors import (
    ConfigurationError,
    EmptyTaskSet,
    FetchError,
    InvalidTimeSpec,
    NetfloodError,
    ReportDeliveryError,
    TaskSourceError,
)
from netflood.fetcher import Connector, fetch
from netflood.reporter import StatsReporter
from netflood.speed import ByteCounter, SpeedSample, SpeedSampler, SpeedSink
from netflood.tasks import DownloadTask, load_tasks_from_api, load_tasks_from_file, parse_tasks
from netflood.timegate import TimeGate, TimeWindow

__all__ = [
    "Burner",
    "ByteCounter",
    "ConfigurationError",
    "Connector",
    "DownloadTask",
    "EmptyTaskSet",
    "FetchError",
    "InvalidTimeSpec",
    "NetfloodError",
    "ReportDeliveryError",
    "SpeedSample",
    "SpeedSampler",
    "SpeedSink",
    "StatsReporter",
    "TaskDistributor",
    "TaskSourceError",
    "TimeGate",
    "TimeWindow",
    "fetch",
    "load_tasks_from_api",
    "load_tasks_from_file",
    "parse_tasks",
]
