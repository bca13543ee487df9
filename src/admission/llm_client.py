"""
Thin Azure OpenAI wrapper shared by the question and evaluation agents.

Both agents send a system + user message in JSON mode and get back the raw
reply text.  Parsing lives with each agent because the expected shapes
differ (array of questions vs. object of scores).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from openai import AzureOpenAI

from admission.config import AzureOpenAIConfig

logger = logging.getLogger(__name__)

_ARRAY_RE  = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class JsonChatClient:
    """
    Azure OpenAI chat client locked to JSON-mode replies.

    The SDK's own retries are disabled so a slow or failing service turns
    into an exception within ``timeout_seconds``; callers treat that exactly
    like any other failure and fall back locally.
    """

    def __init__(self, config: AzureOpenAIConfig) -> None:
        if not config.is_configured:
            raise EnvironmentError(
                "Azure OpenAI is not configured. "
                "Set AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY."
            )
        self._cfg = config
        self._client = AzureOpenAI(
            azure_endpoint=config.endpoint,
            api_key=config.api_key,
            api_version=config.api_version,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    def complete(self, system: str, user: str, *, temperature: float = 0.2,
                 max_tokens: int = 1500) -> str:
        response = self._client.chat.completions.create(
            model=self._cfg.deployment,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user",   "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        text = response.choices[0].message.content or ""
        logger.debug("LLM reply (%d chars)", len(text))
        return text


def extract_json(text: str, *, expect: str = "object") -> Any:
    """
    Parse *text* as JSON, or pull the first ``{...}`` / ``[...]`` block out of
    it when the model wrapped the payload in prose or code fences.

    Raises ValueError when nothing parseable is found.
    """
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass
    pattern = _ARRAY_RE if expect == "array" else _OBJECT_RE
    match = pattern.search(text or "")
    if not match:
        raise ValueError(f"No JSON {expect} found in LLM reply")
    return json.loads(match.group(0))
