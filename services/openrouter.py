"""
OpenRouter chat-completion client.

Wraps the single outbound HTTP API the pipeline depends on, in buffered and
token-streamed flavours, and maps failures onto the pipeline's error
taxonomy so the resilience wrapper can tell transient failures from fatal
ones.
"""
import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
import structlog

from agents.cancellation import CancellationSignal
from agents.errors import AuthError, ProviderError, TransportError
from config import settings
from services.pricing import estimate_tokens

logger = structlog.get_logger()

OnToken = Callable[[str, str], Union[None, Awaitable[None]]]

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for one completion."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False

    @classmethod
    def from_api(cls, usage: Optional[dict]) -> Optional["TokenUsage"]:
        if not usage or not isinstance(usage, dict):
            return None
        try:
            prompt = int(usage.get("prompt_tokens") or 0)
            completion = int(usage.get("completion_tokens") or 0)
            total = int(usage.get("total_tokens") or (prompt + completion))
        except (TypeError, ValueError):
            return None
        return cls(prompt, completion, total)

    @classmethod
    def estimate(cls, prompt_text: str, completion_text: str) -> "TokenUsage":
        prompt = estimate_tokens(prompt_text)
        completion = estimate_tokens(completion_text)
        return cls(prompt, completion, prompt + completion, estimated=True)

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt_tokens,
            "completion": self.completion_tokens,
            "total": self.total_tokens,
            "estimated": self.estimated,
        }


@dataclass
class CompletionOptions:
    """Per-call options."""
    model: str
    temperature: float = 0.7
    max_tokens: int = 4000
    cancel_signal: Optional[CancellationSignal] = None
    api_key: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")


@dataclass(frozen=True)
class CompletionResult:
    text: str
    token_usage: TokenUsage
    model: str


class OpenRouterClient:
    """
    Async client for OpenRouter chat completions.

    Usage:
        client = OpenRouterClient()
        result = await client.complete(system, user, CompletionOptions(model="openai/gpt-4o"))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        request_timeout: float = 300.0,
    ):
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self, api_key: Optional[str]) -> dict[str, str]:
        key = api_key or self.api_key
        if not key:
            raise AuthError(
                "OpenRouter API key is required. Set OPENROUTER_API_KEY or supply a BYOK key."
            )
        return {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "HTTP-Referer": settings.app_url,
            "X-Title": settings.app_name,
        }

    def _payload(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
        stream: bool,
    ) -> dict[str, Any]:
        return {
            "model": options.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "stream": stream,
        }

    @staticmethod
    def _error_message(response: httpx.Response, body: Optional[str] = None) -> str:
        text = body if body is not None else response.text
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return text[:200] or response.reason_phrase
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message") or response.reason_phrase
        if error:
            return str(error)
        return response.reason_phrase

    def _raise_for_status(self, response: httpx.Response, body: Optional[str] = None) -> None:
        if response.is_success:
            return
        message = self._error_message(response, body)
        if response.status_code in (401, 403):
            raise AuthError(f"OpenRouter rejected credentials: {message}")
        raise ProviderError(
            f"OpenRouter API error ({response.status_code}): {message}",
            status_code=response.status_code,
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
    ) -> CompletionResult:
        """
        Buffered completion.

        Raises:
            AuthError, TransportError, ProviderError, OperationCancelledError
        """
        if options.cancel_signal:
            return await options.cancel_signal.guard(
                self._complete(system_prompt, user_prompt, options)
            )
        return await self._complete(system_prompt, user_prompt, options)

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
    ) -> CompletionResult:
        headers = self._headers(options.api_key)
        payload = self._payload(system_prompt, user_prompt, options, stream=False)

        try:
            response = await self._http.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise TransportError(f"OpenRouter request failed: {e}") from e

        self._raise_for_status(response)

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Malformed completion response: {e}", status_code=response.status_code
            ) from e
        if not isinstance(text, str):
            raise ProviderError("No content received from model", status_code=response.status_code)

        usage = TokenUsage.from_api(data.get("usage")) or TokenUsage.estimate(
            system_prompt + user_prompt, text
        )

        logger.debug(
            "Completion received",
            model=data.get("model", options.model),
            total_tokens=usage.total_tokens,
        )
        return CompletionResult(text=text, token_usage=usage, model=data.get("model") or options.model)

    async def complete_streaming(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
        on_token: Optional[OnToken] = None,
    ) -> CompletionResult:
        """
        Token-streamed completion.

        on_token(delta, accumulated) is called for every content fragment in
        arrival order. A stream that ends without the [DONE] sentinel raises
        TransportError; partial text is never returned.
        """
        if options.cancel_signal:
            return await options.cancel_signal.guard(
                self._complete_streaming(system_prompt, user_prompt, options, on_token)
            )
        return await self._complete_streaming(system_prompt, user_prompt, options, on_token)

    async def _complete_streaming(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
        on_token: Optional[OnToken],
    ) -> CompletionResult:
        headers = self._headers(options.api_key)
        payload = self._payload(system_prompt, user_prompt, options, stream=True)

        accumulated = ""
        usage: Optional[TokenUsage] = None
        model = options.model
        finished = False

        try:
            async with self._http.stream(
                "POST", f"{self.base_url}/chat/completions", json=payload, headers=headers
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    self._raise_for_status(response, body)

                async for line in response.aiter_lines():
                    line = line.strip()
                    # Blank separators and SSE comments (": OPENROUTER PROCESSING")
                    if not line or line.startswith(":") or not line.startswith("data:"):
                        continue

                    data = line[len("data:"):].strip()
                    if data == DONE_SENTINEL:
                        finished = True
                        break

                    try:
                        frame = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed stream frame", frame=data[:200])
                        continue
                    if not isinstance(frame, dict):
                        logger.debug("Skipping non-object stream frame", frame=data[:200])
                        continue

                    if frame.get("error"):
                        error = frame["error"]
                        message = error.get("message") if isinstance(error, dict) else str(error)
                        raise ProviderError(f"OpenRouter stream error: {message}")

                    model = frame.get("model") or model
                    usage = TokenUsage.from_api(frame.get("usage")) or usage

                    choices = frame.get("choices") or []
                    choice = choices[0] if isinstance(choices, list) and choices else None
                    delta = None
                    if isinstance(choice, dict) and isinstance(choice.get("delta"), dict):
                        delta = choice["delta"].get("content")
                    if delta and not isinstance(delta, str):
                        delta = None
                    if delta:
                        accumulated += delta
                        if on_token:
                            outcome = on_token(delta, accumulated)
                            if inspect.isawaitable(outcome):
                                await outcome
        except httpx.HTTPError as e:
            raise TransportError(f"OpenRouter stream failed: {e}") from e

        if not finished:
            raise TransportError("Stream ended without completion sentinel")

        usage = usage or TokenUsage.estimate(system_prompt + user_prompt, accumulated)
        return CompletionResult(text=accumulated, token_usage=usage, model=model)
