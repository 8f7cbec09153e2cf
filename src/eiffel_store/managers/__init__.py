"""Cross-cutting managers (logging)."""

from eiffel_store.managers.logging_manager import get_logger, set_log_level

__all__ = ["get_logger", "set_log_level"]
