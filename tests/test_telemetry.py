from paramsync.core.telemetry import Telemetry


def test_records_are_bounded():
    telemetry = Telemetry(max_records=3)
    for i in range(5):
        telemetry.record_event("tick", {"i": i})
        telemetry.record_metric("latency", float(i))

    assert [e.metadata["i"] for e in telemetry.get_events()] == [2, 3, 4]
    assert [m.value for m in telemetry.get_metrics()] == [2.0, 3.0, 4.0]


def test_event_filter_and_clear():
    telemetry = Telemetry()
    telemetry.record_event("session.lost", {"reason": "peer closed"})
    telemetry.record_event("session.connected")

    assert len(telemetry.get_events("session.lost")) == 1
    assert telemetry.get_events("session.connected")[0].metadata == {}

    telemetry.clear()
    assert telemetry.get_events() == []
    assert telemetry.get_metrics() == []
