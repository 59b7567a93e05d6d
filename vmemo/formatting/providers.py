"""
LLM provider abstractions for transcript formatting.

Provides one completion contract over four vendor APIs. Variants differ only
in request shape, where the credential goes, and how the response is read;
error responses are normalized the same way for all of them and every call
is wrapped in a RetryPolicy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, Optional, Tuple, Type
import asyncio
import logging

import aiohttp
import anthropic
import openai

from ..config import ProviderConfig, DEFAULT_PROVIDERS
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class MissingCredentialError(ProviderError):
    """Raised when the active provider has no API key configured."""
    pass


class InvalidCredentialError(ProviderError):
    """Raised when the provider rejects the API key (HTTP 401)."""
    pass


class RateLimitedError(ProviderError):
    """Raised when the provider rate-limits the request (HTTP 429)."""
    pass


class ProviderUnavailableError(ProviderError):
    """Raised for unknown providers and provider-side failures (HTTP 5xx)."""
    pass


class ApiError(ProviderError):
    """Raised for any other non-success response, carrying the upstream message."""
    pass


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CompletionResult:
    """Result from a single completion call."""
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


def extract_error_message(body: Any) -> str:
    """Pull the upstream message out of either error body shape."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    if isinstance(body, str) and body.strip():
        return body.strip()
    return "Unknown API error"


def raise_for_status(status: int, body: Any, provider: Optional[str] = None) -> None:
    """
    Normalize a provider HTTP response status into the error taxonomy.

    Raises:
        InvalidCredentialError: On 401
        RateLimitedError: On 429
        ProviderUnavailableError: On 5xx
        ApiError: On any other non-2xx status
    """
    if 200 <= status < 300:
        return

    if status == 401:
        raise InvalidCredentialError("Invalid API key", provider=provider, status=status)
    if status == 429:
        raise RateLimitedError(
            "Rate limit exceeded. Please try again later.", provider=provider, status=status
        )
    if status >= 500:
        raise ProviderUnavailableError(
            "Provider server error. Please try again.", provider=provider, status=status
        )
    raise ApiError(f"API Error: {extract_error_message(body)}", provider=provider, status=status)


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    provider_type: str = ""
    display_name: str = ""

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 120.0
    ):
        self.config = config or DEFAULT_PROVIDERS.get(self.provider_type, ProviderConfig())
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.usage_stats = {
            'requests': 0,
            'successful': 0,
            'failed': 0,
            'total_tokens': 0
        }

    def is_configured(self) -> bool:
        """Check if an API key is set for this provider."""
        return bool(self.config.api_key)

    @property
    def model(self) -> str:
        return self.config.model or DEFAULT_PROVIDERS[self.provider_type].model

    @property
    def endpoint(self) -> str:
        return self.config.endpoint or DEFAULT_PROVIDERS[self.provider_type].endpoint

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None
    ) -> CompletionResult:
        """
        Run a completion with retries.

        Args:
            system_prompt: Instructions bound to the template
            user_prompt: Message embedding the transcript
            max_tokens: Output token ceiling (provider config default if None)

        Returns:
            CompletionResult with content, model and token usage.

        Raises:
            MissingCredentialError: If no API key is configured; no request is sent.
            ProviderError: The last attempt's error once retries are exhausted.
        """
        if not self.is_configured():
            raise MissingCredentialError(
                f"{self.provider_type} API key not configured. "
                "Please add your API key in settings.",
                provider=self.provider_type,
            )

        tokens = max_tokens or self.config.max_tokens
        try:
            result = await self.retry_policy.run(
                self._complete_once, system_prompt, user_prompt, tokens
            )
        except Exception:
            self.update_usage_stats(success=False)
            raise

        self.update_usage_stats(success=True, tokens=result.usage.total)
        return result

    @abstractmethod
    async def _complete_once(
        self, system_prompt: str, user_prompt: str, max_tokens: int
    ) -> CompletionResult:
        """Send one request to the vendor API."""
        pass

    def update_usage_stats(self, success: bool, tokens: int = 0):
        """Update usage statistics."""
        self.usage_stats['requests'] += 1
        if success:
            self.usage_stats['successful'] += 1
        else:
            self.usage_stats['failed'] += 1
        self.usage_stats['total_tokens'] += tokens

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get current usage statistics."""
        return self.usage_stats.copy()


class AnthropicProvider(CompletionProvider):
    """Anthropic Claude provider (API key sent in the x-api-key header)."""

    provider_type = "anthropic"
    display_name = "Claude"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client: Optional[anthropic.Anthropic] = None

    async def _complete_once(
        self, system_prompt: str, user_prompt: str, max_tokens: int
    ) -> CompletionResult:
        # Run the synchronous SDK call in a thread pool
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, partial(self._sync_complete, system_prompt, user_prompt, max_tokens)
        )

    def _sync_complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> CompletionResult:
        """Synchronous completion to be run in executor."""
        if not self._client:
            # RetryPolicy owns retries, the SDK must not add its own
            self._client = anthropic.Anthropic(
                api_key=self.config.api_key,
                base_url=self.endpoint,
                timeout=self.timeout,
                max_retries=0
            )

        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ]
            )
        except anthropic.APIStatusError as e:
            raise_for_status(e.status_code, e.body, provider=self.provider_type)
            raise

        usage = getattr(response, "usage", None)
        return CompletionResult(
            content=response.content[0].text,
            model=getattr(response, "model", None) or self.model,
            usage=TokenUsage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
        )


class OpenAIProvider(CompletionProvider):
    """OpenAI GPT provider (bearer token, chat completions)."""

    provider_type = "openai"
    display_name = "OpenAI"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client: Optional[openai.OpenAI] = None

    async def _complete_once(
        self, system_prompt: str, user_prompt: str, max_tokens: int
    ) -> CompletionResult:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, partial(self._sync_complete, system_prompt, user_prompt, max_tokens)
        )

    def _sync_complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> CompletionResult:
        """Synchronous completion to be run in executor."""
        if not self._client:
            self._client = openai.OpenAI(
                api_key=self.config.api_key,
                base_url=self.endpoint,
                timeout=self.timeout,
                max_retries=0
            )

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ]
            )
        except openai.APIStatusError as e:
            raise_for_status(e.status_code, e.body, provider=self.provider_type)
            raise

        usage = getattr(response, "usage", None)
        return CompletionResult(
            content=response.choices[0].message.content or "",
            model=getattr(response, "model", None) or self.model,
            usage=TokenUsage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )


class XAIProvider(OpenAIProvider):
    """xAI Grok provider; speaks the OpenAI chat completions shape."""

    provider_type = "xai"
    display_name = "Grok"


class GoogleProvider(CompletionProvider):
    """Google Gemini provider (API key sent as a query-string parameter)."""

    provider_type = "google"
    display_name = "Gemini"

    async def _complete_once(
        self, system_prompt: str, user_prompt: str, max_tokens: int
    ) -> CompletionResult:
        url = f"{self.endpoint.rstrip('/')}/{self.model}:generateContent"
        payload = {
            "system_instruction": {
                "parts": [{"text": system_prompt}]
            },
            "contents": [
                {"parts": [{"text": user_prompt}]}
            ],
            "generationConfig": {
                "maxOutputTokens": max_tokens
            }
        }

        status, data = await self._post(url, payload)
        raise_for_status(status, data, provider=self.provider_type)

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or [{}]
        usage = data.get("usageMetadata") or {}
        return CompletionResult(
            content=parts[0].get("text", ""),
            model=self.model,
            usage=TokenUsage(
                input_tokens=usage.get("promptTokenCount", 0),
                output_tokens=usage.get("candidatesTokenCount", 0),
            ),
        )

    async def _post(self, url: str, payload: Dict[str, Any]) -> Tuple[int, Any]:
        """POST the payload and return (status, parsed body)."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                url,
                params={"key": self.config.api_key},
                json=payload,
                headers={"Content-Type": "application/json"}
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {"message": await response.text()}
                return response.status, data or {}


PROVIDERS: Dict[str, Type[CompletionProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "google": GoogleProvider,
    "xai": XAIProvider,
}


def create_provider(
    provider_type: str,
    config: Optional[ProviderConfig] = None,
    retry_policy: Optional[RetryPolicy] = None
) -> CompletionProvider:
    """
    Build the provider registered under a type tag.

    Raises:
        ProviderUnavailableError: If no provider is registered for the tag.
    """
    provider_class = PROVIDERS.get(provider_type)
    if provider_class is None:
        raise ProviderUnavailableError(f"Unknown provider: {provider_type}", provider=provider_type)
    return provider_class(config=config, retry_policy=retry_policy)
