"""Masking applied to SmartLogger params before they reach the console or disk.

Credentials are replaced wholesale. SQL statements keep their shape but
lose quoted literal values, which tend to carry user data.
"""
import re
from typing import Any, Mapping

REDACTED = "<REDACTED>"
MAX_STRING_CHARS = 500
MAX_DEPTH = 20

_CREDENTIAL_KEYS = ("api_key", "apikey", "authorization", "token", "password", "secret")
_STATEMENT_KEYS = ("statement", "query", "optimized_query", "sql")

_INLINE_SECRETS = (
    re.compile(r"\bsk-[A-Za-z0-9]{10,}\b"),
    re.compile(r"\bBearer\s+[A-Za-z0-9\-\._=]{10,}\b", re.IGNORECASE),
    re.compile(r"\bIDENTIFIED\s+BY\s+'[^']*'", re.IGNORECASE),
)
_SQL_LITERAL = re.compile(r"'(?:[^'\\]|\\.|'')*'")


def truncate_text(value: str, limit: int = MAX_STRING_CHARS) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...(+{len(value) - limit} chars)"


def mask_sql_literals(statement: str) -> str:
    """``WHERE email = 'a@b.c'`` -> ``WHERE email = '?'``"""
    return _SQL_LITERAL.sub("'?'", statement)


def _clean_text(value: str, *, is_statement: bool = False) -> str:
    for pattern in _INLINE_SECRETS:
        value = pattern.sub(REDACTED, value)
    if is_statement:
        value = mask_sql_literals(value)
    return truncate_text(value)


def _key_kind(key: Any) -> str:
    name = str(key).strip().lower()
    if any(fragment in name for fragment in _CREDENTIAL_KEYS):
        return "credential"
    if name in _STATEMENT_KEYS:
        return "statement"
    return "plain"


def _sanitize_mapping(params: Mapping[Any, Any], depth: int) -> dict:
    cleaned = {}
    for key, value in params.items():
        kind = _key_kind(key)
        if kind == "credential":
            cleaned[key] = REDACTED
        elif kind == "statement" and isinstance(value, str):
            cleaned[key] = _clean_text(value, is_statement=True)
        else:
            cleaned[key] = sanitize_for_log(value, _depth=depth + 1)
    return cleaned


def sanitize_for_log(obj: Any, *, _depth: int = 0) -> Any:
    if obj is None or _depth >= MAX_DEPTH:
        return obj
    if isinstance(obj, str):
        return _clean_text(obj)
    if isinstance(obj, Mapping):
        return _sanitize_mapping(obj, _depth)
    if isinstance(obj, (list, tuple, set)):
        items = [sanitize_for_log(item, _depth=_depth + 1) for item in obj]
        return type(obj)(items) if not isinstance(obj, list) else items
    return obj
