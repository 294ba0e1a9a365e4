"""
Success envelope shared by every endpoint: {"success": true, "data"|"message"}.
"""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic.alias_generators import to_camel


def camelize(value: Any) -> Any:
    """Rename snake_case dict keys to camelCase, recursively."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = camelize(jsonable_encoder(data))
    for key, value in extra.items():
        body[to_camel(key)] = camelize(jsonable_encoder(value))
    return body
