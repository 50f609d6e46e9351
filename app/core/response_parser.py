"""Decoding of structured payloads out of free-text model replies.

Replies are untrusted. They may wrap the JSON payload in a fenced code block
(with or without a language tag). Anything that does not decode into the exact
expected shape is a ParseError; no repair is attempted.
"""
from __future__ import annotations

import re
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from app.core.errors import ParseError

_FENCE = "```"
_LANGUAGE_TAG = re.compile(r"^[A-Za-z][\w+-]*\s*")

ModelT = TypeVar("ModelT", bound=BaseModel)

_STRING_LIST = TypeAdapter(List[str])


def strip_code_fences(text: str) -> str:
    """
    Remove a surrounding markdown fence while keeping the inner content.
    The opening fence line may carry a language tag (```json).
    """
    s = (text or "").strip()
    if not s.startswith(_FENCE):
        return s
    lines = s.splitlines()
    if len(lines) == 1:
        # Single-line form: ```{"a": 1}```
        inner = s[len(_FENCE):]
        if not inner.lstrip().startswith(("{", "[")):
            inner = _LANGUAGE_TAG.sub("", inner, count=1)
        if inner.endswith(_FENCE):
            inner = inner[: -len(_FENCE)]
        return inner.strip()
    body = lines[1:]
    if body and body[-1].rstrip().endswith(_FENCE):
        body[-1] = body[-1].rstrip()[: -len(_FENCE)]
    return "\n".join(body).strip()


def parse_model(text: str, model: Type[ModelT]) -> ModelT:
    """Decode a reply into ``model`` with strict validation."""
    payload = strip_code_fences(text)
    if not payload:
        raise ParseError("empty model response")
    try:
        return model.model_validate_json(payload, strict=True)
    except ValidationError as exc:
        raise ParseError(f"invalid {model.__name__} payload: {exc.error_count()} error(s)") from exc


def parse_string_list(text: str) -> List[str]:
    """Decode a reply that must be a JSON array of strings."""
    payload = strip_code_fences(text)
    if not payload:
        raise ParseError("empty model response")
    try:
        return _STRING_LIST.validate_json(payload, strict=True)
    except ValidationError as exc:
        raise ParseError(f"expected a JSON array of strings: {exc.error_count()} error(s)") from exc


def describe_payload(text: Any, limit: int = 200) -> str:
    """Short preview of a raw reply for logs."""
    s = str(text or "")
    return s if len(s) <= limit else s[:limit] + "..."
