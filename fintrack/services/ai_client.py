"""
Call OpenAI-compatible chat completion backends (Groq, OpenAI, Gemini, LM Studio, ...).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from fintrack.core.ai_runtime import chat_completions_url, provider_headers, resolve_provider_chain
from fintrack.core.config import settings
from fintrack.core.errors import UpstreamServiceError

logger = logging.getLogger("fintrack.ai")


@dataclass
class ChatCompletion:
    content: str
    provider: str
    model: str
    usage: dict[str, Any] | None = field(default=None)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return (response.text or "").strip()[:300] or f"AI backend returned {response.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if body.get("message"):
            return str(body["message"])
    return f"AI backend returned {response.status_code}"


async def _post_completion(provider: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
    url = chat_completions_url(provider["base_url"])
    headers = provider_headers(provider)
    name = provider["name"]
    try:
        async with httpx.AsyncClient(timeout=settings.ai_timeout_seconds) as client:
            r = await client.post(url, json=payload, headers=headers or None)
            r.raise_for_status()
            return r.json()
    except httpx.HTTPStatusError as e:
        raise UpstreamServiceError(e.response.status_code, _error_message(e.response), provider=name) from e
    except httpx.TimeoutException as e:
        raise UpstreamServiceError(
            504, "AI backend did not respond in time. The model may be busy; try again.", provider=name
        ) from e
    except httpx.TransportError as e:
        raise UpstreamServiceError(503, f"Cannot reach AI backend at {provider['base_url']}.", provider=name) from e
    except json.JSONDecodeError as e:
        raise UpstreamServiceError(502, f"AI backend returned a non-JSON body: {e!s}", provider=name) from e


async def create_chat_completion(
    messages: list[dict[str, Any]],
    *,
    temperature: float = 0.3,
    system_message: str | None = None,
    max_tokens: int | None = None,
    allow_fallback: bool = True,
) -> ChatCompletion:
    """
    Run one chat completion against the configured provider chain.

    With `allow_fallback` the next provider is tried after a rate limit or a
    transport failure; any other error is terminal. Without it only the
    primary provider is used. The same provider is never retried.
    """
    chain = resolve_provider_chain()
    if not chain:
        raise UpstreamServiceError(
            503,
            "AI backend is not configured. Set GROQ_API_KEY, OPENAI_API_KEY, GEMINI_API_KEY or AI_BASE_URL.",
            suggestion="Configure an AI provider API key and restart the server.",
        )
    if not allow_fallback:
        chain = chain[:1]
    final_messages = list(messages)
    if system_message:
        final_messages = [{"role": "system", "content": system_message}, *final_messages]

    last_error: UpstreamServiceError | None = None
    for i, provider in enumerate(chain):
        payload: dict[str, Any] = {
            "model": provider["model"],
            "messages": final_messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        try:
            data = await _post_completion(provider, payload)
        except UpstreamServiceError as e:
            last_error = e
            can_fall_back = e.is_rate_limited or e.status_code in (503, 504)
            if i < len(chain) - 1 and can_fall_back:
                logger.warning(
                    "ai_provider_failed provider=%s status=%s next=%s", provider["name"], e.status_code, chain[i + 1]["name"]
                )
                continue
            logger.error("ai_provider_failed provider=%s status=%s details=%s", provider["name"], e.status_code, e.details)
            raise
        choices = data.get("choices") or []
        if not choices:
            raise UpstreamServiceError(502, "AI backend returned no choices.", provider=provider["name"])
        content = ((choices[0].get("message") or {}).get("content") or "").strip()
        logger.info("ai_completion provider=%s model=%s chars=%s", provider["name"], provider["model"], len(content))
        return ChatCompletion(
            content=content,
            provider=provider["name"],
            model=provider["model"],
            usage=data.get("usage"),
        )
    assert last_error is not None
    raise last_error
