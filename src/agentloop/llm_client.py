"""Model provider client for OpenAI-compatible chat completion APIs.

Tool use is XML in plain text, so no native tool schema is sent. The
wire format has no `tool` role for free text, so tool results go out as
user messages prefixed with `[<tool> result]`.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from .config import Config
from .conversation import Message, tool_result_text
from .logger import get_logger
from .tool_registry import ToolDef

log = get_logger("llm")


class ModelClientError(RuntimeError):
    """The provider could not produce an assistant message."""


class ModelClient(Protocol):
    async def send(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> Message:
        """Return the next assistant message."""


def to_wire_message(message: Message) -> Dict[str, Any]:
    if message.role == "tool":
        return {"role": "user", "content": tool_result_text(message.name, message.text)}
    return {"role": message.role, "content": message.content}


class OpenAICompatibleClient:
    """Posts to `<api_url>/chat/completions`, retrying rate limits and 5xx."""

    def __init__(self, config: Config, max_retries: int = 5,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.max_retries = max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(600.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def build_payload(self, messages: Sequence[Message]) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [to_wire_message(m) for m in messages],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    async def send(self, messages: Sequence[Message], tools: Sequence[ToolDef] = ()) -> Message:
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        url = f"{self.config.api_url.rstrip('/')}/chat/completions"
        payload = self.build_payload(messages)
        log.debug("POST %s model=%s messages=%d", url, self.config.model, len(messages))

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.post(url, headers=self._get_headers(), json=payload)
                response.raise_for_status()
                return self._parse_response(response.json())
            except httpx.HTTPStatusError as e:
                last_error = e
                status_code = e.response.status_code
                if (status_code == 429 or status_code >= 500) and attempt < self.max_retries:
                    await self._backoff(attempt, f"HTTP {status_code}")
                    continue
                raise ModelClientError(
                    f"API request failed with status {status_code}: {e.response.text}"
                ) from e
            except httpx.RequestError as e:
                last_error = e
                if attempt < self.max_retries:
                    await self._backoff(attempt, str(e) or type(e).__name__)
                    continue
                raise ModelClientError(
                    f"API request failed after {self.max_retries} retries: {e}"
                ) from e

        raise ModelClientError(f"API request failed after {self.max_retries} retries: {last_error}")

    async def _backoff(self, attempt: int, reason: str) -> None:
        wait_time = min(2 ** (attempt + 1), 60)
        log.warning("Model request failed (%s); retrying in %ss (attempt %d/%d)",
                    reason, wait_time, attempt + 1, self.max_retries)
        await asyncio.sleep(wait_time)

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> Message:
        choices: List[Dict[str, Any]] = data.get("choices") or []
        if not choices:
            raise ModelClientError(f"Response contained no choices: {str(data)[:200]}")
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        if usage:
            log.debug("usage: prompt=%s completion=%s",
                      usage.get("prompt_tokens"), usage.get("completion_tokens"))
        return Message("assistant", content)
