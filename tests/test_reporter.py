"""Tests for the stats reporter."""

import logging
import threading
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest
import requests

from netflood.errors import ReportDeliveryError
from netflood.reporter import StatsData, StatsReporter
from netflood.speed import MB
from netflood.stats_server import make_server


class TestStatsReporter:
    """Tests for StatsReporter."""

    def test_defaults(self):
        reporter = StatsReporter("http://example.com/stats")
        assert reporter.api_url == "http://example.com/stats"
        assert reporter.hostname
        assert reporter.interval == 10

    def test_hostname_fallback(self):
        with patch("netflood.reporter.socket.gethostname", side_effect=OSError):
            assert StatsReporter("http://example.com/stats").hostname == "unknown"

    def test_report_payload(self):
        resp = Mock(status_code=200)
        reporter = StatsReporter("http://example.com/stats", hostname="box-1")
        with patch("netflood.reporter.requests.post", return_value=resp) as mock_post:
            data = reporter.report(15.5, 1024.0, "12:00-13:00")

        assert data == StatsData(name="box-1", speed=15.5, total=1024.0, time="12:00-13:00")
        mock_post.assert_called_once_with(
            "http://example.com/stats",
            json={"name": "box-1", "speed": 15.5, "total": 1024.0, "time": "12:00-13:00"},
            timeout=10.0,
        )

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_any_2xx_succeeds(self, status):
        reporter = StatsReporter("http://example.com/stats", hostname="h")
        with patch("netflood.reporter.requests.post", return_value=Mock(status_code=status)):
            reporter.report(1.0, 2.0, "全天候运行")

    @pytest.mark.parametrize("status", [301, 404, 500])
    def test_non_2xx_fails(self, status):
        reporter = StatsReporter("http://example.com/stats", hostname="h")
        with patch("netflood.reporter.requests.post", return_value=Mock(status_code=status)):
            with pytest.raises(ReportDeliveryError, match=str(status)):
                reporter.report(1.0, 2.0, "全天候运行")

    def test_transport_error(self):
        reporter = StatsReporter("http://example.com/stats", hostname="h")
        with patch("netflood.reporter.requests.post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(ReportDeliveryError):
                reporter.report(1.0, 2.0, "全天候运行")

    def test_report_once_computes_average(self):
        reporter = StatsReporter("http://example.com/stats", hostname="h")
        start = datetime.now() - timedelta(seconds=100)
        with patch.object(reporter, "report") as mock_report:
            assert reporter.report_once(lambda: 200 * MB, lambda: start, lambda: "12:00-13:00")

        avg, total, label = mock_report.call_args[0]
        assert total == pytest.approx(200.0)
        assert avg == pytest.approx(2.0, rel=0.05)
        assert label == "12:00-13:00"

    def test_report_once_failure_is_logged_only(self, caplog):
        reporter = StatsReporter("http://example.com/stats", hostname="h")
        with patch.object(reporter, "report", side_effect=ReportDeliveryError("status 500")):
            assert reporter.report_once(lambda: 0, datetime.now, lambda: "x") is False
        assert any("status 500" in r.message for r in caplog.records if r.levelno == logging.WARNING)

    def test_start_reporting_ticks_until_stopped(self):
        reporter = StatsReporter("http://example.com/stats", hostname="h", interval=0.05)
        stop = threading.Event()
        calls = []

        def fake_once(*args):
            calls.append(args)
            if len(calls) >= 3:
                stop.set()
            return True

        with patch.object(reporter, "report_once", side_effect=fake_once):
            t = threading.Thread(
                target=reporter.start_reporting, args=(stop, lambda: 0, datetime.now, lambda: "x")
            )
            t.start()
            t.join(timeout=5)
        assert not t.is_alive()
        assert len(calls) == 3

    def test_report_to_live_server(self):
        server = make_server("127.0.0.1", 0)
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()
        try:
            url = f"http://127.0.0.1:{server.server_address[1]}/stats"
            data = StatsReporter(url, hostname="box").report(3.25, 512.0, "23:00-01:00")
            assert data.name == "box"
            assert data.time == "23:00-01:00"
        finally:
            server.shutdown()
            server.server_close()
