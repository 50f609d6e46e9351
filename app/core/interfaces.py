"""Capability protocols the pipeline depends on.

The model-backed steps are non-deterministic outside but are treated as pure
functions here, so a test double with canned answers can stand in for them.
"""
from typing import List, Protocol

from app.core.models import SafetyVerdict


class TextClassifier(Protocol):
    async def classify(self, statement: str) -> SafetyVerdict:
        ...

    async def enforce(self, statement: str) -> str:
        ...


class TextExtractor(Protocol):
    async def extract(self, statement: str) -> List[str]:
        ...
