import json
import logging

from app.observability import (
    JsonFormatter,
    MetricsStore,
    metrics_store,
    observe_timing,
    set_request_id,
)


def test_metrics_store_snapshot_and_reset():
    store = MetricsStore()
    store.increment("purchase_recorded_total")
    store.increment("purchase_recorded_total", 2)
    store.observe("distribution_batch_duration_s", 1.0)
    store.observe("distribution_batch_duration_s", 3.0)

    snapshot = store.snapshot()

    assert snapshot.counters == {"purchase_recorded_total": 3}
    assert snapshot.timings["distribution_batch_duration_s"] == {
        "count": 2.0,
        "avg_s": 2.0,
        "max_s": 3.0,
    }
    assert snapshot.uptime_s >= 0

    store.reset()
    assert store.snapshot().counters == {}


def test_observe_timing_records_into_global_store():
    with observe_timing("unit_block_seconds"):
        pass

    assert metrics_store.snapshot().timings["unit_block_seconds"]["count"] == 1.0


def test_json_formatter_includes_settlement_fields():
    set_request_id("req-42")
    record = logging.LogRecord(
        name="presale.settlement",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="distribution_order_fulfilled",
        args=(),
        exc_info=None,
    )
    record.order_id = "order-1"
    record.tx_hash = "0xfeed"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "distribution_order_fulfilled"
    assert payload["request_id"] == "req-42"
    assert payload["order_id"] == "order-1"
    assert payload["tx_hash"] == "0xfeed"
    assert payload["wallet_address"] is None
