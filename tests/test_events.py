"""Tests for event publishing."""

import logging
import queue

import pytest

from discwright.events import EventBus, JobEventPublisher, NullPublisher


def test_subscription_filters_by_job():
    bus = EventBus()
    everything = bus.subscribe()
    only_a = bus.subscribe("a")

    JobEventPublisher(bus, "a").log("from a")
    JobEventPublisher(bus, "b").log("from b")

    assert [e.payload["message"] for e in everything.drain()] == ["from a", "from b"]
    events = only_a.drain()
    assert [e.payload["message"] for e in events] == ["from a"]
    assert events[0].job_id == "a"
    assert events[0].payload["jobId"] == "a"
    assert events[0].kind == "output"


def test_progress_event():
    bus = EventBus()
    subscription = bus.subscribe()

    JobEventPublisher(bus, "a").progress(3, 9, "Stage filler")

    event = subscription.get(timeout=1)
    assert event.kind == "progress"
    assert event.payload["percent"] == 33
    assert event.payload["message"] == "Stage filler"


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    subscription = bus.subscribe()
    subscription.unsubscribe()

    JobEventPublisher(bus, "a").log("ignored")

    with pytest.raises(queue.Empty):
        subscription.get(timeout=0.01)


def test_timing(caplog):
    caplog.set_level(logging.INFO)
    bus = EventBus()
    subscription = bus.subscribe()
    publisher = JobEventPublisher(bus, "a")

    publisher.time("encode")
    elapsed = publisher.time_end("encode")

    assert elapsed >= 0
    event = subscription.get(timeout=1)
    assert event.payload["type"] == "timing"
    assert event.payload["message"].startswith("encode: completed in ")
    assert "completed in" in caplog.text


def test_unknown_timer_warns():
    publisher = NullPublisher()

    assert publisher.time_end("never") is None


def test_null_publisher_logs(caplog):
    caplog.set_level(logging.INFO)

    NullPublisher().log("hello")
    NullPublisher().error("bad")

    assert "hello" in caplog.text
    assert any(r.levelno == logging.ERROR and r.getMessage() == "bad" for r in caplog.records)
