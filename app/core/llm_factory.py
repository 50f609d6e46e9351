"""
Chat model construction.

Provider and model come from Settings (llm_provider / llm_model) and can be
overridden per call. Provider aliases: "gemini" / "genai" -> "google".
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Union

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from app.config import Settings
from app.smart_logger import SmartLogger

LLMProvider = Literal["openai", "google", "openai_compatible"]
ChatModel = Union[ChatOpenAI, ChatGoogleGenerativeAI]

_PROVIDER_ALIASES: Dict[str, LLMProvider] = {
    "openai": "openai",
    "google": "google",
    "gemini": "google",
    "genai": "google",
    "openai_compatible": "openai_compatible",
    "openai-compatible": "openai_compatible",
    "openai_compat": "openai_compatible",
}


def normalize_provider(value: str) -> LLMProvider:
    provider = _PROVIDER_ALIASES.get((value or "").strip().lower())
    if provider is None:
        raise ValueError(
            "Unsupported llm_provider={!r}. Allowed: 'openai', 'google' (alias: 'gemini'), "
            "'openai_compatible'.".format(value)
        )
    return provider


def _filter_init_kwargs(cls: type, kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pass only the init kwargs the installed LangChain class accepts.
    """
    # Pydantic-based chat models list accepted keys (and aliases) as model
    # fields; their __init__ signature is just (**data).
    model_fields = getattr(cls, "model_fields", None)
    if isinstance(model_fields, dict) and model_fields:
        allowed = set(model_fields)
        allowed.update(f.alias for f in model_fields.values() if getattr(f, "alias", None))
    else:
        params = inspect.signature(cls.__init__).parameters.values()
        if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params):
            return {k: v for k, v in kwargs.items() if v is not None}
        allowed = {p.name for p in params}
    return {k: v for k, v in kwargs.items() if k in allowed and v is not None}


def _usable(key: Optional[str]) -> str:
    key = (key or "").strip()
    return "" if key.lower() == "dummy" else key


def resolve_api_key(settings: Settings, provider: LLMProvider) -> str:
    if provider == "openai":
        key, env_name = _usable(settings.openai_api_key), "OPENAI_API_KEY"
    elif provider == "openai_compatible":
        # Dedicated key first, OPENAI_API_KEY as fallback.
        key = _usable(settings.openai_compatible_api_key) or _usable(settings.openai_api_key)
        env_name = "OPENAI_COMPATIBLE_API_KEY"
    else:
        key, env_name = _usable(settings.google_api_key), "GOOGLE_API_KEY"
    if not key:
        raise ValueError(f"{env_name} is missing (llm_provider={provider})")
    return key


@dataclass(frozen=True)
class LLMHandle:
    llm: ChatModel
    provider: LLMProvider
    model: str


def _build_openai_chat(
    *, model: str, api_key: str, base_url: str, temperature: float, max_tokens: Optional[int]
) -> ChatOpenAI:
    raw_kwargs: Dict[str, Any] = {
        # ChatOpenAI renamed these across versions; pass both spellings and filter.
        "model": model,
        "model_name": model,
        "api_key": api_key,
        "openai_api_key": api_key,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "base_url": base_url or None,
        "openai_api_base": base_url or None,
    }
    return ChatOpenAI(**_filter_init_kwargs(ChatOpenAI, raw_kwargs))


def _build_google_chat(
    *, model: str, api_key: str, temperature: float, max_tokens: Optional[int]
) -> ChatGoogleGenerativeAI:
    raw_kwargs: Dict[str, Any] = {
        "model": model,
        "google_api_key": api_key,
        "temperature": temperature,
        "max_output_tokens": max_tokens,
    }
    return ChatGoogleGenerativeAI(**_filter_init_kwargs(ChatGoogleGenerativeAI, raw_kwargs))


def create_llm(
    settings: Settings,
    *,
    purpose: str,
    temperature: Optional[float] = None,
    max_output_tokens: Optional[int] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    provider_url: Optional[str] = None,
) -> LLMHandle:
    """
    Create a LangChain chat model.

    Args:
        purpose: for logging/diagnostics (not used for routing)
        provider/model/provider_url: override the corresponding settings when provided
    """
    prov = normalize_provider(provider or settings.llm_provider)
    mdl = (model or settings.llm_model or "").strip()
    if not mdl:
        raise ValueError("llm_model is empty")
    temp = float(settings.llm_temperature if temperature is None else temperature)
    max_tokens = max_output_tokens if max_output_tokens is not None else settings.llm_max_output_tokens
    max_tokens = int(max_tokens) if max_tokens else None
    api_key = resolve_api_key(settings, prov)

    base_url = ""
    if prov == "google":
        llm: ChatModel = _build_google_chat(model=mdl, api_key=api_key, temperature=temp, max_tokens=max_tokens)
    else:
        base_url = (provider_url if provider_url is not None else settings.llm_provider_url or "").strip()
        if prov == "openai_compatible" and not base_url:
            raise ValueError("llm_provider_url is required when llm_provider=openai_compatible")
        llm = _build_openai_chat(
            model=mdl, api_key=api_key, base_url=base_url, temperature=temp, max_tokens=max_tokens
        )

    SmartLogger.log(
        "INFO",
        "optimizer.llm.created",
        category="optimizer.llm",
        params={"provider": prov, "model": mdl, "purpose": purpose, "base_url": base_url or None},
        max_inline_chars=0,
    )
    return LLMHandle(llm=llm, provider=prov, model=mdl)
