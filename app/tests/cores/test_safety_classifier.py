# python -m pytest app/tests/cores/test_safety_classifier.py -v

"""Tests for the cached, fail-closed safety classifier."""

import pytest

from app.core.errors import ProviderError, SecurityError
from app.core.models import QueryType, SafetyVerdict
from app.core.safety_classifier import FAIL_CLOSED_REASON, SafetyClassifier, verdict_cache_key
from app.tests.fakes import ScriptedLanguageModel, safe_verdict_json, unsafe_verdict_json


class BrokenCache:
    async def get(self, key):
        raise ConnectionError("redis is down")

    async def set_with_ttl(self, key, value, ttl_seconds):
        raise ConnectionError("redis is down")

    async def delete(self, key):
        raise ConnectionError("redis is down")

    async def ping(self):
        raise ConnectionError("redis is down")


def test_cache_key_ignores_case_and_surrounding_whitespace():
    assert verdict_cache_key("  SELECT * FROM users \n") == verdict_cache_key("select * from users")
    assert verdict_cache_key("SELECT 1").startswith("queryValidation:")
    assert verdict_cache_key("SELECT 1") != verdict_cache_key("SELECT 2")


@pytest.mark.asyncio
async def test_second_classification_is_served_from_cache(cache):
    llm = ScriptedLanguageModel(lambda prompt: safe_verdict_json())
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    first = await classifier.classify("SELECT * FROM users")
    second = await classifier.classify("  select * from USERS ")

    assert first == second
    assert first.is_safe and first.query_type == QueryType.SELECT
    assert len(llm.prompts) == 1
    assert "SELECT * FROM users" in llm.prompts[0]


@pytest.mark.asyncio
async def test_cached_verdict_is_stored_as_json(cache):
    llm = ScriptedLanguageModel(lambda prompt: safe_verdict_json())
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    await classifier.classify("SELECT 1 FROM users")

    raw = await cache.get(verdict_cache_key("SELECT 1 FROM users"))
    assert SafetyVerdict.model_validate_json(raw).is_safe
    assert b'"isSafe":true' in raw


@pytest.mark.asyncio
async def test_model_saying_safe_is_overruled_for_modifying_statement(cache, log_events):
    # A model that wrongly calls everything safe
    llm = ScriptedLanguageModel(lambda prompt: safe_verdict_json())
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    verdict = await classifier.classify("DROP TABLE users")

    assert not verdict.is_safe
    assert verdict.query_type == QueryType.UNSAFE
    assert "Read-only check failed" in verdict.reason
    assert any(category == "optimizer.security" for _, _, category, _ in log_events)


@pytest.mark.asyncio
async def test_unsafe_verdict_is_cached_and_reported(cache, log_events):
    llm = ScriptedLanguageModel(lambda prompt: unsafe_verdict_json())
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    await classifier.classify("DELETE FROM users")
    verdict = await classifier.classify("DELETE FROM users")

    assert verdict.reason == "DROP statement detected"
    assert len(llm.prompts) == 1
    security_events = [e for e in log_events if e[2] == "optimizer.security"]
    assert len(security_events) == 2
    assert all(level == "WARNING" for level, _, _, _ in security_events)


@pytest.mark.asyncio
async def test_provider_failure_fails_closed_without_caching(cache):
    llm = ScriptedLanguageModel(lambda prompt: ProviderError("timeout"))
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    first = await classifier.classify("SELECT * FROM users")
    second = await classifier.classify("SELECT * FROM users")

    assert first == SafetyVerdict.rejected(FAIL_CLOSED_REASON)
    assert second == first
    # not cached: the model is asked again
    assert len(llm.prompts) == 2
    assert await cache.get(verdict_cache_key("SELECT * FROM users")) is None


@pytest.mark.asyncio
async def test_malformed_reply_fails_closed(cache):
    llm = ScriptedLanguageModel(lambda prompt: "Sure! This query looks safe to me.")
    classifier = SafetyClassifier(llm, cache, ttl_seconds=60)

    verdict = await classifier.classify("SELECT * FROM users")

    assert not verdict.is_safe
    assert verdict.reason == FAIL_CLOSED_REASON


@pytest.mark.asyncio
async def test_unavailable_cache_does_not_block_classification():
    llm = ScriptedLanguageModel(lambda prompt: safe_verdict_json())
    classifier = SafetyClassifier(llm, BrokenCache(), ttl_seconds=60)

    verdict = await classifier.classify("SELECT * FROM users")

    assert verdict.is_safe


@pytest.mark.asyncio
async def test_enforce_returns_statement_or_raises(cache):
    def respond(prompt):
        return unsafe_verdict_json("UPDATE detected") if "Query: UPDATE" in prompt else safe_verdict_json()

    classifier = SafetyClassifier(ScriptedLanguageModel(respond), cache, ttl_seconds=60)

    assert await classifier.enforce("SELECT * FROM users") == "SELECT * FROM users"
    with pytest.raises(SecurityError) as excinfo:
        await classifier.enforce("UPDATE users SET name = 'x'")

    assert "UPDATE detected" in excinfo.value.message
