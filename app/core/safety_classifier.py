"""
Safety gate for user statements.

- Verdicts are cached per normalized statement (trim + lower-case)
- Unknown statements are classified by the language model
- A "safe" model verdict must also pass the deterministic SQLGuard
- Any failure yields a rejecting verdict (fail-closed); such verdicts are not cached
"""
import hashlib
import traceback
from typing import Optional

from app.core.errors import ParseError, ProviderError, SecurityError
from app.core.llm_client import LanguageModelClient
from app.core.models import SafetyVerdict
from app.core.response_parser import describe_payload, parse_model
from app.core.result_cache import ResultCache
from app.core.sql_guard import SQLGuard, SQLValidationError
from app.prompts import render_prompt
from app.smart_logger import SmartLogger

CACHE_PREFIX = "queryValidation"
FAIL_CLOSED_REASON = "validation failed"


def verdict_cache_key(statement: str) -> str:
    normalized = (statement or "").strip().lower()
    return f"{CACHE_PREFIX}:{hashlib.sha256(normalized.encode('utf-8')).hexdigest()}"


class SafetyClassifier:
    """Classifies statements as safe/unsafe. ``classify`` never raises."""

    _PROMPT_FILE = "query_safety_prompt.md"

    def __init__(
        self,
        llm: LanguageModelClient,
        cache: ResultCache,
        *,
        ttl_seconds: int = 3600,
        guard: Optional[SQLGuard] = None,
    ):
        self.llm = llm
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.guard = guard or SQLGuard()

    async def classify(self, statement: str) -> SafetyVerdict:
        key = verdict_cache_key(statement)
        try:
            cached = await self._read_cached(key)
            if cached is not None:
                SmartLogger.log(
                    "DEBUG",
                    "optimizer.safety.cache_hit",
                    category="optimizer.safety",
                    params={"key": key},
                )
                self._log_if_unsafe(statement, cached, source="cache")
                return cached

            reply = await self.llm.complete(render_prompt(self._PROMPT_FILE, query=statement))
            verdict = self._cross_check(statement, parse_model(reply, SafetyVerdict))
        except (ProviderError, ParseError) as exc:
            return self._fail_closed(statement, exc)
        except Exception as exc:
            SmartLogger.log(
                "ERROR",
                "optimizer.safety.unexpected_error",
                category="optimizer.safety",
                params={"exception": repr(exc), "traceback": traceback.format_exc()},
            )
            return self._fail_closed(statement, exc)

        await self._store(key, verdict)
        self._log_if_unsafe(statement, verdict, source="llm")
        return verdict

    async def enforce(self, statement: str) -> str:
        """Return the statement unchanged, or raise SecurityError if it is unsafe."""
        verdict = await self.classify(statement)
        if not verdict.is_safe:
            raise SecurityError(f"Query rejected: {verdict.reason}")
        return statement

    def _cross_check(self, statement: str, verdict: SafetyVerdict) -> SafetyVerdict:
        if not verdict.is_safe:
            return verdict
        try:
            self.guard.check_read_only(statement)
        except SQLValidationError as exc:
            return SafetyVerdict.rejected(f"Read-only check failed: {exc}")
        return verdict

    async def _read_cached(self, key: str) -> Optional[SafetyVerdict]:
        try:
            raw = await self.cache.get(key)
        except Exception as exc:
            SmartLogger.log(
                "WARNING",
                "optimizer.safety.cache_read_failed",
                category="optimizer.safety",
                params={"key": key, "exception": repr(exc)},
            )
            return None
        if raw is None:
            return None
        try:
            return SafetyVerdict.model_validate_json(raw)
        except ValueError:
            # Unreadable entry: classify again and overwrite it.
            return None

    async def _store(self, key: str, verdict: SafetyVerdict) -> None:
        try:
            await self.cache.set_with_ttl(key, verdict.model_dump_json(by_alias=True), self.ttl_seconds)
        except Exception as exc:
            SmartLogger.log(
                "WARNING",
                "optimizer.safety.cache_write_failed",
                category="optimizer.safety",
                params={"key": key, "exception": repr(exc)},
            )

    def _fail_closed(self, statement: str, exc: Exception) -> SafetyVerdict:
        SmartLogger.log(
            "ERROR",
            "optimizer.safety.validation_failed",
            category="optimizer.safety",
            params={
                "statement": statement,
                "error_type": type(exc).__name__,
                "error": describe_payload(exc),
            },
        )
        verdict = SafetyVerdict.rejected(FAIL_CLOSED_REASON)
        self._log_if_unsafe(statement, verdict, source="fail_closed")
        return verdict

    @staticmethod
    def _log_if_unsafe(statement: str, verdict: SafetyVerdict, *, source: str) -> None:
        if verdict.is_safe:
            return
        SmartLogger.log(
            "WARNING",
            "optimizer.security.unsafe_query_blocked",
            category="optimizer.security",
            params={
                "statement": statement,
                "query_type": verdict.query_type.value,
                "reason": verdict.reason,
                "source": source,
            },
            max_inline_chars=0,
        )
