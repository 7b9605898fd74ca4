"""Minimal HTTP server that receives and logs netflood stats reports.

Endpoints:
    POST /stats   - JSON report {"name", "speed", "total", "time"}
    GET  /        - short usage text
"""

from __future__ import annotations

import argparse
import http.server
import json
import logging
from datetime import datetime

logger = logging.getLogger("netflood")

DEFAULT_PORT = 8080

USAGE = """netflood stats server

POST /stats with a JSON body:
  {"name": "my-server", "speed": 15.5, "total": 1024.0, "time": "12:00-13:00"}

Run the generator with:
  netflood -f demo.txt --stats-api http://localhost:%d/stats
"""


class StatsHandler(http.server.BaseHTTPRequestHandler):
    def _send_json(self, status: int, payload: dict):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _reject_method(self):
        if self.path == "/stats":
            self.send_error(405, "Method not allowed")
        else:
            self.send_error(404)

    def do_GET(self):
        if self.path != "/":
            self._reject_method()
            return
        body = (USAGE % self.server.server_address[1]).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    do_PUT = do_DELETE = do_PATCH = do_HEAD = do_OPTIONS = _reject_method

    def do_POST(self):
        if self.path != "/stats":
            self.send_error(404)
            return

        length = int(self.headers.get("Content-Length") or 0)
        raw = self.rfile.read(length)
        try:
            stats = json.loads(raw)
            if not isinstance(stats, dict):
                raise ValueError("expected a JSON object")
            total = float(stats.get("total", 0))
            speed = float(stats.get("speed", 0))
        except (ValueError, TypeError) as e:
            logger.error(f"invalid stats payload: {e}")
            self.send_error(400, "Invalid JSON")
            return

        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        logger.info(
            f"[{stamp}] stats from {stats.get('name', '?')}: avg={speed:.2f} MB/s, "
            f"total={total:.2f} MB ({total / 1024:.2f} GB), window={stats.get('time', '')}"
        )
        self._send_json(200, {"status": "success", "message": "Statistics received"})

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> http.server.ThreadingHTTPServer:
    return http.server.ThreadingHTTPServer((host, port), StatsHandler)


def main() -> int:
    p = argparse.ArgumentParser(description="Receive and log netflood stats reports.")
    p.add_argument("--host", default="0.0.0.0", help="Listen address (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Listen port (default: {DEFAULT_PORT})")
    args = p.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    server = make_server(args.host, args.port)
    logger.info(f"stats server listening on http://{args.host}:{args.port}/stats")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        server.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
