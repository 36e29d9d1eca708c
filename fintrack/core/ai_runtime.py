from __future__ import annotations

import re
from typing import Any

from fintrack.core.config import settings


def _custom_provider() -> dict[str, str] | None:
    base = (settings.ai_base_url or "").strip()
    if not base:
        return None
    return {
        "name": "custom",
        "base_url": base,
        "model": (settings.ai_model or settings.openai_model).strip(),
        "api_key": (settings.ai_api_key or "").strip(),
        "api_key_header": (settings.ai_api_key_header or "Authorization").strip() or "Authorization",
        "api_key_prefix": (settings.ai_api_key_prefix or "").strip(),
    }


def _hosted_provider(name: str, base_url: str, model: str, api_key: str | None) -> dict[str, str] | None:
    key = (api_key or "").strip()
    if not key:
        return None
    return {
        "name": name,
        "base_url": base_url.strip(),
        "model": model.strip(),
        "api_key": key,
        "api_key_header": "Authorization",
        "api_key_prefix": "Bearer",
    }


def resolve_provider_chain() -> list[dict[str, str]]:
    """Configured providers in priority order: custom, Groq #1, Groq #2, OpenAI, Gemini."""
    candidates = [
        _custom_provider(),
        _hosted_provider("groq", settings.groq_base_url, settings.groq_model, settings.groq_api_key),
        _hosted_provider("groq_2", settings.groq_base_url, settings.groq_model, settings.groq_api_key_2),
        _hosted_provider("openai", settings.openai_base_url, settings.openai_model, settings.openai_api_key),
        _hosted_provider("gemini", settings.gemini_base_url, settings.gemini_model, settings.gemini_api_key),
    ]
    return [c for c in candidates if c]


def ai_backend_configured() -> bool:
    return bool(resolve_provider_chain())


def chat_completions_url(base: str) -> str:
    b = (base or "").rstrip("/")
    if b.endswith("/chat/completions"):
        return b
    if "/openai" in b or re.search(r"/v\d+(beta)?$", b):
        return f"{b}/chat/completions"
    return f"{b}/v1/chat/completions"


def provider_headers(provider: dict[str, str]) -> dict[str, str]:
    key = (provider.get("api_key") or "").strip()
    if not key:
        return {}
    header = (provider.get("api_key_header") or "Authorization").strip() or "Authorization"
    prefix = (provider.get("api_key_prefix") or "").strip()
    if header.lower() == "authorization" and prefix and not prefix.endswith(" "):
        prefix = prefix + " "
    value = f"{prefix}{key}" if prefix else key
    return {header: value}


def get_ai_config_public() -> dict[str, Any]:
    chain = resolve_provider_chain()
    return {
        "configured": bool(chain),
        "providers": [{"name": p["name"], "base_url": p["base_url"], "model": p["model"]} for p in chain],
    }
