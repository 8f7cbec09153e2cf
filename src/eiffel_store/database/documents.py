"""Parsing and serialization of documents exchanged with the store.

Inputs arrive as strings (MongoDB Extended JSON) or as mappings. Everything is
parsed into a plain `dict` before it reaches the driver, and read results are
serialized back to Extended JSON strings. `render_fields` gives the `key=value`
form used for substring matching.
"""

from typing import Any, Dict, Mapping, Union

from bson import json_util

from eiffel_store.database.errors import BadInputError

DocumentInput = Union[str, bytes, Mapping[str, Any]]


def parse_document(payload: DocumentInput) -> Dict[str, Any]:
    """
    Parse a JSON string or mapping into a document.

    Raises:
        BadInputError: If the payload is not valid JSON or not a JSON object.
    """
    if isinstance(payload, Mapping):
        return dict(payload)

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")

    if not isinstance(payload, str):
        raise BadInputError(f"Expected a JSON object string or mapping, got {type(payload).__name__}")

    text = payload.strip()
    if not text:
        raise BadInputError("Empty document payload")

    try:
        parsed = json_util.loads(text)
    except ValueError as e:
        raise BadInputError(f"Malformed JSON payload: {e}") from e

    if not isinstance(parsed, dict):
        raise BadInputError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def serialize_document(document: Mapping[str, Any]) -> str:
    """Serialize a document to an Extended JSON string."""
    return json_util.dumps(document)


def render_fields(value: Any) -> str:
    """
    Render a document as `{key=value, ...}`, recursing into nested mappings and lists.

    `{"_id": "agg", "status": "PASSED"}` renders as `{_id=agg, status=PASSED}`,
    which is the form containment checks such as `"status=PASSED"` are written against.
    """
    if isinstance(value, Mapping):
        return "{" + ", ".join(f"{key}={render_fields(item)}" for key, item in value.items()) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render_fields(item) for item in value) + "]"
    return str(value)
