from unittest.mock import MagicMock

import pytest

from conftest import TEST_DB
from eiffel_store.services.consistency_verifier import ConsistencyVerifier, containment_match, identity_match


class FakeClock:
    """Manual clock advanced by the verifier's sleep calls."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_verifier(handler, clock, collection="events", **kwargs):
    return ConsistencyVerifier(handler, TEST_DB, collection, clock=clock, sleep=clock.sleep, **kwargs)


def test_identity_match():
    assert identity_match({"_id": "e1"}, "e1")
    assert not identity_match({"_id": "e1"}, "e2")
    assert not identity_match({"id": "e1"}, "e1")


def test_containment_match():
    document = {"_id": "agg", "summary": "status=PASSED", "nested": {"name": "artifact"}}

    assert containment_match(document, "status=PASSED")
    assert containment_match(document, '"name": "artifact"')
    assert not containment_match(document, "status=FAILED")


def test_containment_match_key_value_fields():
    document = {"_id": "agg", "status": "PASSED", "artifact": {"name": "a1", "tags": ["x", "y"]}}

    assert containment_match(document, "status=PASSED")
    assert containment_match(document, "name=a1")
    assert containment_match(document, "tags=[x, y]")
    assert not containment_match(document, "status=FAILED")


def test_empty_expected_returns_immediately_without_store_access(clock):
    store = MagicMock()
    verifier = make_verifier(store, clock)

    assert verifier.verify([], identity_match) == []
    store.find_all.assert_not_called()
    assert clock.sleeps == []


def test_identity_scenario_reports_missing_after_timeout(handler, clock):
    """Test that e1 and e2 are found while e3 is reported after the deadline."""
    handler.insert(TEST_DB, "events", '{"_id": "e1"}')
    handler.insert(TEST_DB, "events", '{"_id": "e2"}')
    verifier = make_verifier(handler, clock)

    remaining = verifier.verify(["e1", "e2", "e3"], identity_match, timeout_ms=3000)

    assert remaining == ["e3"]
    assert clock.now >= 3.0
    assert sum(clock.sleeps) == pytest.approx(3.0)


def test_containment_scenario(handler, clock):
    handler.insert_raw(TEST_DB, "aggregated_objects", {"_id": "agg-1", "result": "status=PASSED"})
    verifier = make_verifier(handler, clock, collection="aggregated_objects")

    remaining = verifier.verify(["status=PASSED", "status=FAILED"], containment_match, timeout_ms=3000)

    assert remaining == ["status=FAILED"]


def test_containment_scenario_on_plain_fields(handler, clock):
    handler.insert_raw(TEST_DB, "aggregated_objects", {"_id": "agg", "status": "PASSED"})
    verifier = make_verifier(handler, clock, collection="aggregated_objects")

    remaining = verifier.verify(["status=PASSED", "status=FAILED"], containment_match, timeout_ms=3000)

    assert remaining == ["status=FAILED"]


def test_all_found_returns_on_first_poll(handler, clock):
    handler.insert_raw(TEST_DB, "events", {"_id": "e1"})
    handler.insert_raw(TEST_DB, "events", {"_id": "e2"})
    verifier = make_verifier(handler, clock)

    assert verifier.verify(["e2", "e1"], identity_match) == []
    assert clock.sleeps == []


def test_items_appearing_later_are_found(clock):
    store = MagicMock()
    store.find_all.side_effect = [
        ['{"_id": "e1"}'],
        ['{"_id": "e1"}'],
        ['{"_id": "e1"}', '{"_id": "e2"}'],
    ]
    verifier = make_verifier(store, clock, poll_interval_ms=500)

    assert verifier.verify(["e1", "e2"], identity_match, timeout_ms=10000) == []
    assert store.find_all.call_count == 3
    assert clock.sleeps == [0.5, 0.5]
    store.find_all.assert_called_with(TEST_DB, "events")


def test_remaining_order_is_preserved(clock):
    store = MagicMock()
    store.find_all.return_value = ['{"_id": "b"}']
    verifier = make_verifier(store, clock)

    assert verifier.verify(["d", "b", "a", "c"], identity_match, timeout_ms=0) == ["d", "a", "c"]


def test_zero_timeout_polls_once(clock):
    store = MagicMock()
    store.find_all.return_value = []
    verifier = make_verifier(store, clock)

    assert verifier.verify(["e1"], identity_match, timeout_ms=0) == ["e1"]
    assert store.find_all.call_count == 1
    assert clock.sleeps == []


def test_last_sleep_is_capped_at_deadline(clock):
    store = MagicMock()
    store.find_all.return_value = []
    verifier = make_verifier(store, clock, poll_interval_ms=1000)

    verifier.verify(["e1"], identity_match, timeout_ms=2500)

    assert clock.sleeps == [1.0, 1.0, 0.5]


def test_default_timeout_from_constructor(clock):
    store = MagicMock()
    store.find_all.return_value = []
    verifier = make_verifier(store, clock, timeout_ms=2000, poll_interval_ms=1000)

    assert verifier.verify(["e1"], identity_match) == ["e1"]
    assert clock.now == pytest.approx(2.0)


def test_raising_matcher_counts_as_no_match(clock):
    store = MagicMock()
    store.find_all.return_value = ['{"_id": "e1"}']

    def flaky(document, item):
        if item == "boom":
            raise RuntimeError("matcher failure")
        return identity_match(document, item)

    verifier = make_verifier(store, clock)

    assert verifier.verify(["e1", "boom"], flaky, timeout_ms=0) == ["boom"]


def test_store_outage_yields_remaining_items(handler, fake_server, clock):
    fake_server.reachable = False
    verifier = make_verifier(handler, clock)

    assert verifier.verify(["e1"], identity_match, timeout_ms=1000) == ["e1"]


def test_invalid_intervals_rejected(clock):
    with pytest.raises(ValueError):
        make_verifier(MagicMock(), clock, poll_interval_ms=0)
    with pytest.raises(ValueError):
        make_verifier(MagicMock(), clock, timeout_ms=-1)
