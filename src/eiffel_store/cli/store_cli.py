"""
Command-line interface for store maintenance and verification.

Commands:
    health          Check that the store is reachable and the database has collections
    ensure-ttl      Create or replace a TTL index
    verify-ids      Wait until documents with the given `_id`s exist
    verify-values   Wait until the given substrings appear in some document

Connection settings come from `eiffel_store.config.settings` and can be
overridden with `--host`, `--port` and `--database`. Every command exits with 0
on success and 1 on failure.
"""

import argparse
import sys
from typing import List, Optional, Sequence

from eiffel_store.config import settings
from eiffel_store.database import MongoDBHandler, StoreError, build_handler
from eiffel_store.managers.logging_manager import get_logger
from eiffel_store.services.consistency_verifier import ConsistencyVerifier, containment_match, identity_match

logger = get_logger(prefix="[StoreCLI]")


class StoreCLI:
    """CLI commands operating on one `MongoDBHandler`."""

    def __init__(self, handler: MongoDBHandler, db_name: str):
        self.handler = handler
        self.db_name = db_name

    def health(self) -> bool:
        healthy = self.handler.health_check(self.db_name)
        if healthy:
            logger.info("Store is healthy (database: %s)", self.db_name)
        else:
            logger.error("Store is not healthy (database: %s)", self.db_name)
        return healthy

    def ensure_ttl(self, collection: str, field: str, expiry_seconds: int) -> bool:
        """
        Create or replace the TTL index on `collection.field`.

        Returns:
            True if the index is in place, False otherwise
        """
        try:
            self.handler.connect()
            self.handler.ensure_ttl_index(self.db_name, collection, field, expiry_seconds)
        except StoreError as e:
            logger.error("Failed to ensure TTL index: %s", e)
            return False
        logger.info("TTL index on %s.%s expires after %d seconds", collection, field, expiry_seconds)
        return True

    def _verify(self, collection: str, items: Sequence[str], matcher, timeout_ms: int, poll_interval_ms: int) -> bool:
        try:
            verifier = ConsistencyVerifier(self.handler, self.db_name, collection, timeout_ms, poll_interval_ms)
        except ValueError as e:
            logger.error("Invalid verification timing: %s", e)
            return False

        try:
            self.handler.connect()
        except StoreError as e:
            logger.error("Cannot verify, store unavailable: %s", e)
            return False

        missing = verifier.verify(items, matcher)
        if missing:
            logger.error("%d of %d item(s) missing from %s: %s", len(missing), len(items), collection, missing)
            for item in missing:
                print(item)
            return False
        logger.info("All %d item(s) present in %s", len(items), collection)
        return True

    def verify_ids(self, collection: str, ids: Sequence[str], timeout_ms: int, poll_interval_ms: int) -> bool:
        return self._verify(collection, ids, identity_match, timeout_ms, poll_interval_ms)

    def verify_values(self, collection: str, values: Sequence[str], timeout_ms: int, poll_interval_ms: int) -> bool:
        return self._verify(collection, values, containment_match, timeout_ms, poll_interval_ms)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eiffel-store",
        description="Eiffel document store maintenance and verification CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", help=f"MongoDB host (default: {settings.MONGODB_HOST})")
    parser.add_argument("--port", type=int, help=f"MongoDB port (default: {settings.MONGODB_PORT})")
    parser.add_argument("--database", help=f"Database name (default: {settings.MONGODB_DATABASE})")
    parser.add_argument("--log-level", help=f"Log level (default: {settings.LOG_LEVEL})")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("health", help="Check store health")

    ttl_parser = subparsers.add_parser("ensure-ttl", help="Create or replace a TTL index")
    ttl_parser.add_argument("--collection", default=settings.AGGREGATED_COLLECTION, help="Target collection")
    ttl_parser.add_argument("--field", default=settings.TTL_FIELD_NAME, help="Date field to expire on")
    ttl_parser.add_argument(
        "--expiry", type=int, default=settings.TTL_VALUE_SECONDS, help="Expiry in seconds after the field's time"
    )

    for name, help_text, default_collection in (
        ("verify-ids", "Wait for documents with the given _ids", settings.EVENT_OBJECT_MAP_COLLECTION),
        ("verify-values", "Wait for documents containing the given values", settings.AGGREGATED_COLLECTION),
    ):
        verify_parser = subparsers.add_parser(name, help=help_text)
        verify_parser.add_argument("items", nargs="+", help="Expected ids or values")
        verify_parser.add_argument("--collection", default=default_collection, help="Collection to poll")
        verify_parser.add_argument(
            "--timeout-ms", type=int, default=settings.VERIFY_TIMEOUT_MS, help="Overall verification budget"
        )
        verify_parser.add_argument(
            "--poll-interval-ms", type=int, default=settings.VERIFY_POLL_INTERVAL_MS, help="Delay between polls"
        )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    overrides = {}
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level
    if args.host:
        overrides["MONGODB_HOST"] = args.host
    if args.port:
        overrides["MONGODB_PORT"] = args.port
    if args.database:
        overrides["MONGODB_DATABASE"] = args.database
    effective = settings.model_copy(update=overrides) if overrides else settings

    handler = build_handler(effective)
    cli = StoreCLI(handler, effective.MONGODB_DATABASE)
    try:
        if args.command == "health":
            success = cli.health()
        elif args.command == "ensure-ttl":
            success = cli.ensure_ttl(args.collection, args.field, args.expiry)
        elif args.command == "verify-ids":
            success = cli.verify_ids(args.collection, args.items, args.timeout_ms, args.poll_interval_ms)
        else:
            success = cli.verify_values(args.collection, args.items, args.timeout_ms, args.poll_interval_ms)
    finally:
        handler.close()

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
