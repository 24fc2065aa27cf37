"""Duck typed access to arbitrary parsed kubernetes documents.

Plain resource manifests are never parsed into typed objects. These helpers
read and write the common fields of a raw document, treating absent or
malformed maps as empty.
"""

import base64
from collections.abc import Generator
import datetime
import json
import logging
from typing import Any

import yaml

from .exceptions import InputException
from .manifest import GroupVersionKind

__all__ = [
    "is_resource",
    "get_gvk",
    "get_name",
    "get_namespace",
    "set_namespace",
    "get_labels",
    "get_annotations",
    "set_annotations",
    "load_documents",
    "to_json_document",
]

_LOGGER = logging.getLogger(__name__)


def is_resource(doc: Any) -> bool:
    """Return true if the document carries both an apiVersion and a kind.

    The metadata, when present, must be a mapping.
    """
    if not isinstance(doc, dict):
        return False
    if not isinstance(doc.get("apiVersion"), str) or not doc["apiVersion"]:
        return False
    if not isinstance(doc.get("kind"), str) or not doc["kind"]:
        return False
    return doc.get("metadata") is None or isinstance(doc["metadata"], dict)


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _metadata(doc: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(metadata := doc.get("metadata"), dict):
        metadata = {}
        doc["metadata"] = metadata
    return metadata


def get_gvk(doc: dict[str, Any]) -> GroupVersionKind:
    return GroupVersionKind.from_api_version(doc.get("apiVersion", ""), doc.get("kind", ""))


def get_name(doc: dict[str, Any]) -> str:
    return str(_mapping(doc.get("metadata")).get("name") or "")


def get_namespace(doc: dict[str, Any]) -> str | None:
    return _mapping(doc.get("metadata")).get("namespace")


def set_namespace(doc: dict[str, Any], namespace: str) -> None:
    _metadata(doc)["namespace"] = namespace


def get_labels(doc: dict[str, Any]) -> dict[str, str]:
    return dict(_mapping(_mapping(doc.get("metadata")).get("labels")))


def get_annotations(doc: dict[str, Any]) -> dict[str, str]:
    return dict(_mapping(_mapping(doc.get("metadata")).get("annotations")))


def set_annotations(doc: dict[str, Any], annotations: dict[str, str]) -> None:
    _metadata(doc)["annotations"] = dict(annotations)


def load_documents(content: str) -> Generator[Any, None, None]:
    """Parse every document in a YAML (or JSON) stream.

    Empty documents are skipped. Raises `yaml.YAMLError` on malformed content.
    """
    for doc in yaml.safe_load_all(content):
        if doc is None:
            continue
        yield doc


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the document that holds only JSON values.

    YAML timestamps become ISO 8601 strings and binary values become base64
    strings, as a YAML to JSON conversion does. Any other value, a non string
    key that JSON cannot represent or a NaN raises an InputException.
    """
    try:
        return json.loads(json.dumps(doc, default=_json_default, allow_nan=False))
    except (TypeError, ValueError) as err:
        raise InputException(f"Document is not JSON serializable: {err}") from err
