"""Plain text-in / text-out access to the language model."""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

from langchain_core.messages import HumanMessage

from app.core.errors import ProviderError
from app.core.llm_factory import LLMHandle


class LanguageModelClient(ABC):
    """Sends a prompt to a model and returns the raw reply text. No parsing."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Raises ProviderError when the provider call fails."""

    async def ping(self) -> bool:
        """Return True when the model answers; raise otherwise."""
        reply = await self.complete("Reply with exactly: OK")
        return bool(reply and reply.strip())


def message_content_to_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of parts) into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return "" if content is None else str(content)


class ChatModelClient(LanguageModelClient):
    """LanguageModelClient over a LangChain chat model."""

    def __init__(self, handle: LLMHandle, *, timeout_seconds: Optional[float] = None):
        self.handle = handle
        self.timeout_seconds = timeout_seconds

    async def complete(self, prompt: str) -> str:
        messages = [HumanMessage(content=prompt)]
        try:
            if self.timeout_seconds:
                response = await asyncio.wait_for(self.handle.llm.ainvoke(messages), timeout=self.timeout_seconds)
            else:
                response = await self.handle.llm.ainvoke(messages)
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"LLM call timed out after {self.timeout_seconds} seconds ({self.handle.provider}:{self.handle.model})"
            ) from exc
        except Exception as exc:
            raise ProviderError(f"LLM call failed ({self.handle.provider}:{self.handle.model}): {exc!r}") from exc
        return message_content_to_text(getattr(response, "content", None))
