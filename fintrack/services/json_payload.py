"""
Tolerant decoding of JSON payloads returned by chat models.

Models wrap the payload in reasoning blocks, markdown fences or prose. The
wrappers are stripped, strict decoding is attempted, and as a last resort
the first complete JSON value embedded in the text is decoded.
"""
from __future__ import annotations

import json
import re
from typing import Any

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")


class ModelOutputError(ValueError):
    """Model output does not contain the expected JSON payload."""


def strip_wrappers(text: str) -> str:
    content = _THINK_RE.sub("", text or "").strip()
    m = _FENCE_RE.search(content)
    if m:
        content = m.group(1).strip()
    elif content.startswith("```"):
        # Unterminated fence (truncated response)
        content = re.sub(r"^```(?:json|JSON)?", "", content).strip()
    return content


def decode_model_json(text: str) -> Any:
    content = strip_wrappers(text)
    if not content:
        raise ModelOutputError("Model returned an empty response.")
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass
    decoder = json.JSONDecoder()
    for m in re.finditer(r"[\[{]", content):
        try:
            value, _ = decoder.raw_decode(content, m.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, (dict, list)):
            return value
    raise ModelOutputError(f"Model output is not valid JSON. Raw (first 200 chars): {content[:200]!r}")
