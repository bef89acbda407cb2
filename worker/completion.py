"""
Client for an OpenAI-compatible chat completion endpoint (DeepSeek by default).
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from core.config import DeepseekConfig

log = logging.getLogger("worker.completion")

DEFAULT_API_BASE = "https://api.deepseek.com/v1"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_TIMEOUT = 30.0
SYSTEM_PROMPT = "You are a helpful talent acquisition assistant."


class CompletionError(Exception):
    """The completion service could not produce a usable answer."""


class DeepseekClient:
    def __init__(self, config: Optional[DeepseekConfig] = None, client: Optional[httpx.AsyncClient] = None):
        config = config or DeepseekConfig()
        self.api_base = (config.api_base or "").strip().rstrip("/") or DEFAULT_API_BASE
        self.api_key = (config.api_key or "").strip()
        self.model = config.model or DEFAULT_MODEL
        self.timeout = config.timeout if config.timeout and config.timeout > 0 else DEFAULT_TIMEOUT
        self.client = client

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionError("deepseek api key missing")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.api_base}/chat/completions"

        try:
            if self.client is not None:
                resp = await self.client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                    resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise CompletionError(f"deepseek request: {e}") from e

        if resp.status_code >= 300:
            raise CompletionError(f"deepseek http {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise CompletionError(f"decode deepseek response: {e}") from e

        choices = body.get("choices") if isinstance(body, dict) else None
        content = ""
        if choices and isinstance(choices[0], dict):
            content = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not content:
            raise CompletionError("deepseek response empty")

        log.debug("Completion received", extra={"model": self.model, "chars": len(content)})
        return content


__all__ = [
    "CompletionError",
    "DeepseekClient",
]
