"""
# Event Verification Harness

Drives functional tests of an event-aggregation pipeline:

1. `send_events()` picks named events out of a JSON fixture and publishes each
   one to the pipeline's waitlist through an `EventPublisher`.
2. `verify_events_in_db()` waits until every sent event id appears in the
   event-object map collection (identity match on `_id`).
3. `verify_aggregated_object_in_db()` waits until the aggregated collection
   contains every expected value somewhere in a serialized document
   (containment match).

The message queue and the fixture files are reached only through the
`EventPublisher` and `FixtureLoader` protocols.
"""

import json
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Union

from eiffel_store.managers.logging_manager import get_logger
from eiffel_store.services.consistency_verifier import ConsistencyVerifier, containment_match, identity_match

logger = get_logger(prefix="[EventVerification]")

PathLike = Union[str, Path]


class EventPublisher(Protocol):
    """Delivers a serialized event to the pipeline's waitlist queue."""

    def publish_to_waitlist(self, payload: str) -> None:
        ...


class FixtureLoader(Protocol):
    """Loads a JSON fixture file mapping event names to events."""

    def load(self, path: PathLike) -> Mapping[str, Any]:
        ...


class JsonFileFixtureLoader:
    """`FixtureLoader` reading a UTF-8 JSON file from disk."""

    def load(self, path: PathLike) -> Mapping[str, Any]:
        with open(path, "r", encoding="utf-8") as fixture_file:
            data = json.load(fixture_file)
        if not isinstance(data, dict):
            raise ValueError(f"Fixture {path} must contain a JSON object")
        return data


class EventVerificationHarness:
    """
    Sends fixture events and verifies that they reached the store.

    Args:
        handler: Connected `MongoDBHandler` (or anything with `find_all`).
        publisher: Queue publisher.
        db_name: Database the pipeline writes to.
        event_object_map_collection: Collection holding raw events keyed by id.
        aggregated_collection: Collection holding aggregated objects.
        loader: Fixture loader; reads JSON files from disk by default.
        timeout_ms: Verification budget per call.
        poll_interval_ms: Verification polling interval.
    """

    def __init__(
        self,
        handler: Any,
        publisher: EventPublisher,
        db_name: str,
        event_object_map_collection: str = "event_object_map",
        aggregated_collection: str = "aggregated_objects",
        loader: Optional[FixtureLoader] = None,
        timeout_ms: int = 30000,
        poll_interval_ms: int = 1000,
        **verifier_kwargs: Any,
    ):
        self.publisher = publisher
        self.loader = loader or JsonFileFixtureLoader()
        self.events_verifier = ConsistencyVerifier(
            handler, db_name, event_object_map_collection, timeout_ms, poll_interval_ms, **verifier_kwargs
        )
        self.aggregated_verifier = ConsistencyVerifier(
            handler, db_name, aggregated_collection, timeout_ms, poll_interval_ms, **verifier_kwargs
        )

    def send_events(self, path: PathLike, event_names: Sequence[str]) -> List[str]:
        """
        Publish the named events from the fixture at `path`.

        Returns:
            The `meta.id` of every published event, in `event_names` order.

        Raises:
            KeyError: If an event name or its `meta.id` is missing from the fixture.
        """
        fixture = self.loader.load(path)
        event_ids = []
        for name in event_names:
            if name not in fixture:
                raise KeyError(f"Event '{name}' not found in fixture {path}")
            event = fixture[name]
            try:
                event_id = str(event["meta"]["id"])
            except (KeyError, TypeError) as e:
                raise KeyError(f"Event '{name}' in fixture {path} has no meta.id") from e
            self.publisher.publish_to_waitlist(json.dumps(event))
            event_ids.append(event_id)
            logger.debug("Published event %s (%s)", name, event_id)

        logger.info("Published %d events from %s", len(event_ids), path)
        return event_ids

    def verify_events_in_db(self, event_ids: Sequence[str], timeout_ms: Optional[int] = None) -> List[str]:
        """Return the event ids that never appeared in the event-object map."""
        return self.events_verifier.verify(event_ids, identity_match, timeout_ms)

    def verify_aggregated_object_in_db(self, values: Sequence[str], timeout_ms: Optional[int] = None) -> List[str]:
        """Return the expected values never found in any aggregated object."""
        return self.aggregated_verifier.verify(values, containment_match, timeout_ms)
