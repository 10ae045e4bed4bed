"""Conversion between Kubernetes client models and API-shaped data."""

import json
import re
from typing import Any, Optional

from kubernetes import client
from kubernetes.client import ApiClient

_api_client: Optional[ApiClient] = None

_LIST_TYPE = re.compile(r"^list\[(.*)\]$")
_DICT_TYPE = re.compile(r"^dict\(([^,]*), (.*)\)$")
_PASSTHROUGH_TYPES = {"str", "int", "float", "bool", "object", "date", "datetime"}


def _get_api_client() -> ApiClient:
    global _api_client
    if _api_client is None:
        _api_client = ApiClient()
    return _api_client


def sanitize(obj: Any) -> Any:
    """Serialize a client model (or plain data) to API-shaped JSON data."""
    return _get_api_client().sanitize_for_serialization(obj)


def to_model(data: Any, klass: str) -> Any:
    """
    Build a client model from API-shaped data.

    Walks the model's own openapi_types and attribute_map, so it does not
    depend on the ApiClient response handling, which differs between client
    releases.

    Args:
        data: camelCase mapping (or list) as it would appear in a manifest
        klass: Client model type name, e.g. "V1Container" or "list[V1Volume]"

    Returns:
        Typed Kubernetes client model

    Raises:
        ValueError: If a required field is missing or the type is unknown
    """
    if data is None:
        return None

    list_match = _LIST_TYPE.match(klass)
    if list_match:
        return [to_model(item, list_match.group(1)) for item in data]

    dict_match = _DICT_TYPE.match(klass)
    if dict_match:
        return {key: to_model(value, dict_match.group(2)) for key, value in data.items()}

    if klass in _PASSTHROUGH_TYPES:
        return data

    model = getattr(client, klass, None)
    if model is None or not hasattr(model, "openapi_types"):
        raise ValueError(f"Unknown Kubernetes model type {klass}")

    kwargs = {}
    for attr, attr_type in model.openapi_types.items():
        key = model.attribute_map[attr]
        if key in data:
            kwargs[attr] = to_model(data[key], attr_type)
    return model(**kwargs)


def canonical_json(obj: Any) -> str:
    """Stable JSON text for comparisons and annotations."""
    return json.dumps(sanitize(obj), sort_keys=True, separators=(",", ":"))
