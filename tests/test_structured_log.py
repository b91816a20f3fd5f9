"""Tests for structured JSON event logger."""

import io
import json
from unittest.mock import MagicMock, patch

import pytest

from cli.structured_log import StructuredEventLogger


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(buf: io.StringIO) -> StructuredEventLogger:
    return StructuredEventLogger("BTC-USD", enabled=True, stream=buf)


def _last(buf: io.StringIO) -> dict:
    return json.loads(buf.getvalue().strip().splitlines()[-1])


class TestEmit:
    """Basic event emission and format."""

    def test_snapshot_start_json(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.snapshot_start(since="2024-01-01T00:00:00+00:00", limit=5000, user_id="u1")
        record = _last(buf)
        assert record["event"] == "snapshot_start"
        assert record["symbol"] == "BTC-USD"
        assert record["limit"] == 5000
        assert record["user_id"] == "u1"
        assert "ts" in record

    def test_symbol_override(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.snapshot_start(since="x", limit=1, symbol="ETH-USD")
        assert _last(buf)["symbol"] == "ETH-USD"

    def test_records_dropped(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.records_dropped(3, {"bad_side": 2, "missing_amounts": 1})
        record = _last(buf)
        assert record["event"] == "records_dropped"
        assert record["count"] == 3
        assert record["reasons"] == {"bad_side": 2, "missing_amounts": 1}
        assert record["source"] == "ledger"

    def test_exchange_fallback(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.exchange_fallback("503 from fills", status=503)
        record = _last(buf)
        assert record["event"] == "exchange_fallback"
        assert record["status"] == 503
        assert record["partial"] is False

    def test_oversell_detected(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.oversell_detected(qty=0.25, sells=1)
        record = _last(buf)
        assert record["event"] == "oversell_detected"
        assert record["qty"] == 0.25

    def test_snapshot_complete_rounds_pnl(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.snapshot_complete(rows=10, fills=9, trades=4, source_used="mixed", net_pnl_usd=1.23456789)
        record = _last(buf)
        assert record["event"] == "snapshot_complete"
        assert record["source_used"] == "mixed"
        assert record["net_pnl_usd"] == 1.234568

    def test_unauthorized_and_error(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.unauthorized(remote="10.0.0.1", reason="bad admin secret")
        logger.error("snapshot_failed", "db locked")
        lines = [json.loads(line) for line in buf.getvalue().strip().splitlines()]
        assert [r["event"] for r in lines] == ["unauthorized", "error"]
        assert lines[1]["detail"] == "db locked"

    def test_one_line_per_event(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.snapshot_start(since="x", limit=1)
        logger.oversell_detected(qty=1.0, sells=1)
        assert len(buf.getvalue().strip().splitlines()) == 2


class TestDisabled:
    def test_no_output_when_disabled(self, buf: io.StringIO) -> None:
        quiet = StructuredEventLogger("BTC-USD", enabled=False, stream=buf)
        record = quiet.error("boom")
        assert buf.getvalue() == ""
        assert record["event"] == "error"


class TestWebhook:
    def test_alert_events_posted(self, buf: io.StringIO) -> None:
        log = StructuredEventLogger("BTC-USD", stream=buf, webhook_url="https://hooks.test/x")
        with patch("cli.structured_log.urllib.request.urlopen") as urlopen:
            log.exchange_fallback("down", status=503)
            log.snapshot_start(since="x", limit=1)
        assert urlopen.call_count == 1
        req = urlopen.call_args.args[0]
        assert req.full_url == "https://hooks.test/x"
        assert json.loads(req.data)["event"] == "exchange_fallback"

    def test_webhook_failure_does_not_raise(self, buf: io.StringIO) -> None:
        log = StructuredEventLogger("BTC-USD", stream=buf, webhook_url="https://hooks.test/x")
        with patch("cli.structured_log.urllib.request.urlopen", MagicMock(side_effect=OSError("refused"))):
            record = log.error("boom")
        assert record["event"] == "error"
