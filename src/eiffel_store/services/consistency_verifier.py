"""
# Consistency Verifier

Bounded polling check that a set of expected records eventually appears in a
collection.

## Algorithm

1. Seed a checklist from the expected items (order preserved).
2. Fetch every document in the target collection.
3. Remove each checklist entry that `matcher` confirms against some document.
4. Return `[]` as soon as the checklist is empty.
5. Otherwise sleep `poll_interval_ms` and repeat until the deadline passes.
6. Return what is left.

Entries are only ever removed on a confirmed match, so a non-empty result lists
exactly the items that never showed up. A slow store can produce a false
"missing"; it can never produce a false "present".

## Matchers

- `identity_match`: the document's `_id` equals the expected identifier.
- `containment_match`: the document, rendered as `key=value` fields or as
  Extended JSON, contains the expected substring.

The verifier is read-only and keeps no state between calls, so several threads
may verify against the same handler concurrently.
"""

import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from eiffel_store.database.documents import parse_document, render_fields, serialize_document
from eiffel_store.database.errors import StoreError
from eiffel_store.managers.logging_manager import get_logger

logger = get_logger(prefix="[VERIFIER]")

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_POLL_INTERVAL_MS = 1000

Matcher = Callable[[Mapping[str, Any], str], bool]


def identity_match(document: Mapping[str, Any], expected: str) -> bool:
    """Match when the document's `_id` equals `expected`."""
    if "_id" not in document:
        return False
    return str(document["_id"]) == expected


def containment_match(document: Mapping[str, Any], expected: str) -> bool:
    """
    Match when `expected` is a substring of the document rendered either as
    `key=value` fields (`status=PASSED`) or as Extended JSON (`"status": "PASSED"`).
    """
    return expected in render_fields(document) or expected in serialize_document(document)


class ConsistencyVerifier:
    """
    Polls one collection until every expected item is observed or time runs out.

    Args:
        handler: Anything exposing `find_all(db_name, collection_name) -> List[str]`.
        db_name: Database holding the target collection.
        collection_name: Collection to poll.
        timeout_ms: Default overall budget per `verify` call.
        poll_interval_ms: Sleep between polls.
        clock: Monotonic clock in seconds.
        sleep: Sleep function taking seconds.
    """

    def __init__(
        self,
        handler: Any,
        db_name: str,
        collection_name: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if timeout_ms < 0:
            raise ValueError("timeout_ms must not be negative")
        if poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        self.handler = handler
        self.db_name = db_name
        self.collection_name = collection_name
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self._clock = clock
        self._sleep = sleep

    def _fetch_documents(self) -> List[Dict[str, Any]]:
        documents = []
        for raw in self.handler.find_all(self.db_name, self.collection_name):
            try:
                documents.append(parse_document(raw))
            except StoreError as e:
                logger.warning("Skipping unparsable document from %s: %s", self.collection_name, e)
        return documents

    @staticmethod
    def _safe_match(matcher: Matcher, document: Mapping[str, Any], item: str) -> bool:
        try:
            return bool(matcher(document, item))
        except Exception as e:
            logger.warning("Matcher raised for item %r, treating as no match: %s", item, e)
            return False

    def verify(self, expected: Sequence[str], matcher: Matcher, timeout_ms: Optional[int] = None) -> List[str]:
        """
        Wait until every expected item is matched by some document.

        Args:
            expected: Identifiers or substrings that should appear.
            matcher: `matcher(document, item) -> bool`.
            timeout_ms: Overrides the default budget for this call.

        Returns:
            The items never observed, in their original order. `[]` means every
            item was found.
        """
        checklist = list(expected)
        if not checklist:
            return []

        budget_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        start = self._clock()
        deadline = start + budget_ms / 1000.0
        polls = 0

        while True:
            polls += 1
            for document in self._fetch_documents():
                checklist = [item for item in checklist if not self._safe_match(matcher, document, item)]
                if not checklist:
                    break

            if not checklist:
                logger.info(
                    "All %d expected items found in %s.%s after %d poll(s)",
                    len(expected),
                    self.db_name,
                    self.collection_name,
                    polls,
                )
                return []

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            logger.debug("%d item(s) still missing from %s, polling again", len(checklist), self.collection_name)
            self._sleep(min(self.poll_interval_ms / 1000.0, remaining))

        logger.warning(
            "Timed out after %dms waiting for %d item(s) in %s.%s: %s",
            budget_ms,
            len(checklist),
            self.db_name,
            self.collection_name,
            checklist,
        )
        return checklist
