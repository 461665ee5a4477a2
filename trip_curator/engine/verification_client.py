"""HTTP client for the independent verification source."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..config.models import ValidationConfig
from ..errors import InvalidConfigError, SchemaError


@dataclass(slots=True)
class VerificationReply:
    content: str
    input_tokens: int = 0
    output_tokens: int = 0


class VerificationClient(Protocol):
    provider: str

    async def complete(self, system: str, prompt: str, timeout: float) -> VerificationReply: ...


class HttpVerificationClient:
    """Chat-completions client (OpenAI compatible, Perplexity by default)."""

    def __init__(
        self,
        settings: ValidationConfig,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.provider = settings.provider
        key = api_key or os.environ.get(settings.api_key_env)
        if not key and client is None:
            raise InvalidConfigError(f"Missing API key: set {settings.api_key_env}")
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            headers={"Authorization": f"Bearer {key}"},
        )

    async def complete(self, system: str, prompt: str, timeout: float) -> VerificationReply:
        response = await self._client.post(
            "/chat/completions",
            json={
                "model": self.settings.model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0.1,
            },
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SchemaError(f"Unexpected verification response shape: {exc!r}") from exc
        usage = payload.get("usage") or {}
        return VerificationReply(
            content=content or "",
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["HttpVerificationClient", "VerificationClient", "VerificationReply"]
