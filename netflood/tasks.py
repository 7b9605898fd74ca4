"""Download tasks and where they come from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import requests

from netflood.errors import TaskSourceError


@dataclass(frozen=True)
class DownloadTask:
    """One URL to fetch, with the IP its connection is pinned to."""

    ip: str
    url: str


def parse_tasks(content: str) -> List[DownloadTask]:
    """Parse ``<ip>,<url>`` lines. Blank, comment and comma-less lines are skipped."""
    tasks: List[DownloadTask] = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(",", 1)
        if len(parts) != 2:
            continue
        tasks.append(DownloadTask(ip=parts[0].strip(), url=parts[1].strip()))
    return tasks


def load_tasks_from_file(path: str) -> List[DownloadTask]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise TaskSourceError(f"failed to read task file {path}: {e}") from e
    return parse_tasks(content)


def load_tasks_from_api(api_url: str, timeout: float = 30) -> List[DownloadTask]:
    try:
        resp = requests.get(api_url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise TaskSourceError(f"failed to fetch tasks from {api_url}: {e}") from e
    return parse_tasks(resp.text)
