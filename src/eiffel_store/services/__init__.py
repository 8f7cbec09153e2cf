"""Services built on the database layer: record locking and consistency verification."""

from eiffel_store.services.consistency_verifier import ConsistencyVerifier, containment_match, identity_match
from eiffel_store.services.event_verification import EventPublisher, EventVerificationHarness, FixtureLoader
from eiffel_store.services.record_lock import RecordLock

__all__ = [
    "ConsistencyVerifier",
    "EventPublisher",
    "EventVerificationHarness",
    "FixtureLoader",
    "RecordLock",
    "containment_match",
    "identity_match",
]
