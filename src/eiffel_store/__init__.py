"""Document-store client, record locking and eventual-consistency verification for Eiffel event pipelines."""

__version__ = "0.1.0"
