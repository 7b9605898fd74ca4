"""IP-pinned HTTP fetches.

The TCP connection goes to the task's IP while the Host header, TLS SNI and
certificate check keep using the hostname from the URL. Only the host is
pinned: each connection dials the port of the URL it serves, so redirects to
another port or scheme still reach the task's IP.
"""

from __future__ import annotations

import contextlib
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3 import PoolManager
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.exceptions import ConnectTimeoutError, NewConnectionError
from urllib3.util import connection

from netflood.errors import FetchError
from netflood.speed import ByteCounter
from netflood.tasks import DownloadTask

CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 30.0
USER_AGENT = "netflood/1.0"


@dataclass(frozen=True)
class Connector:
    """Network-layer destination for one task.

    ``port`` is the port of the task URL; connections made for other URLs
    (redirects) keep ``ip`` but use their own port.
    """

    ip: str
    port: int

    @classmethod
    def for_url(cls, ip: str, url: str) -> "Connector":
        parts = urlsplit(url)
        port = parts.port  # raises ValueError on a bad port
        if port is None:
            port = 443 if parts.scheme == "https" else 80
        return cls(ip=ip, port=port)

    @property
    def address(self) -> Tuple[str, int]:
        return (self.ip, self.port)

    def address_for(self, port: Optional[int]) -> Tuple[str, int]:
        return (self.ip, port or self.port)


class Watchdog:
    """Aborts every connection of one fetch when its time budget runs out.

    Sockets are shut down rather than closed so a reader blocked in ``recv``
    wakes up.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._watched: List[Tuple[HTTPConnection, socket.socket]] = []
        self.expired = False

    def watch(self, conn: HTTPConnection, sock: socket.socket):
        with self._lock:
            if not self.expired:
                self._watched.append((conn, sock))
                return
        _shutdown(sock)

    def expire(self):
        with self._lock:
            self.expired = True
            watched = list(self._watched)
        for conn, sock in watched:
            # after a TLS handshake the raw socket is detached; conn.sock is the live one
            _shutdown(conn.sock if conn.sock is not None else sock)


def _shutdown(sock: socket.socket):
    # base-class method: cuts an SSLSocket at the fd without touching its TLS state
    with contextlib.suppress(OSError):
        socket.socket.shutdown(sock, socket.SHUT_RDWR)


def _dial(conn) -> socket.socket:
    ip, port = conn.connector.address_for(conn.port)
    try:
        sock = connection.create_connection(
            (ip, port),
            conn.timeout,
            source_address=conn.source_address,
            socket_options=conn.socket_options,
        )
    except socket.timeout as e:
        raise ConnectTimeoutError(
            conn, f"connection to {ip}:{port} timed out (connect timeout={conn.timeout})"
        ) from e
    except OSError as e:
        raise NewConnectionError(conn, f"failed to connect to {ip}:{port}: {e}") from e

    if conn.watchdog is not None:
        conn.watchdog.watch(conn, sock)
    return sock


class PinnedHTTPConnection(HTTPConnection):
    def __init__(self, *args, connector: Connector, watchdog: Optional[Watchdog] = None, **kwargs):
        self.connector = connector
        self.watchdog = watchdog
        super().__init__(*args, **kwargs)

    def _new_conn(self) -> socket.socket:
        return _dial(self)


class PinnedHTTPSConnection(HTTPSConnection):
    def __init__(self, *args, connector: Connector, watchdog: Optional[Watchdog] = None, **kwargs):
        self.connector = connector
        self.watchdog = watchdog
        super().__init__(*args, **kwargs)

    def _new_conn(self) -> socket.socket:
        return _dial(self)


class PinnedPoolManager(PoolManager):
    def __init__(self, connector: Connector, *args, watchdog: Optional[Watchdog] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.connector = connector
        self.watchdog = watchdog

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context=request_context)
        pool.ConnectionCls = PinnedHTTPSConnection if scheme == "https" else PinnedHTTPConnection
        pool.conn_kw = dict(pool.conn_kw, connector=self.connector, watchdog=self.watchdog)
        return pool


class PinnedIPAdapter(HTTPAdapter):
    """HTTPAdapter whose connections all dial ``connector.ip`` instead of resolving the host."""

    def __init__(self, connector: Connector, watchdog: Optional[Watchdog] = None, **kwargs):
        self.connector = connector
        self.watchdog = watchdog
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        self.poolmanager = PinnedPoolManager(
            self.connector,
            num_pools=connections,
            maxsize=maxsize,
            block=block,
            watchdog=self.watchdog,
            **pool_kwargs,
        )


def pinned_session(connector: Connector, watchdog: Optional[Watchdog] = None) -> requests.Session:
    session = requests.Session()
    # proxies from the environment would bypass the pinned connection
    session.trust_env = False
    adapter = PinnedIPAdapter(connector, watchdog=watchdog, max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def fetch(
    task: DownloadTask,
    counter: ByteCounter,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = CHUNK_SIZE,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """GET ``task.url`` over a connection pinned to ``task.ip``.

    On status 200 the body is streamed and discarded, each chunk's length going
    into ``counter`` as it arrives. Any other status is returned without
    reading the body. Transport failures raise FetchError, and so does running
    past ``timeout`` seconds in total; bytes received before that stay counted.
    """
    try:
        connector = Connector.for_url(task.ip, task.url)
    except ValueError as e:
        raise FetchError(f"invalid url: {e}") from e

    exceeded = f"request exceeded {timeout:g}s"
    deadline = clock() + timeout
    watchdog = Watchdog()
    timer = threading.Timer(timeout, watchdog.expire)
    timer.daemon = True
    timer.start()
    try:
        with pinned_session(connector, watchdog) as session:
            with session.get(task.url, stream=True, timeout=(timeout, timeout)) as resp:
                if resp.status_code != 200:
                    return resp.status_code
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if chunk:
                        counter.add(len(chunk))
                    if clock() > deadline:
                        raise FetchError(exceeded)
                if watchdog.expired:
                    raise FetchError(exceeded)
                return resp.status_code
    except (requests.RequestException, OSError, ValueError) as e:
        if watchdog.expired:
            raise FetchError(exceeded) from e
        raise FetchError(str(e)) from e
    finally:
        timer.cancel()
