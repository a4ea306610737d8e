"""
AI provider selection and calls.

Providers are tried in a fixed priority order (anthropic, gemini, openai by
default); the first whose credential resolves for the workspace is used.
Each provider shapes its own request and extracts its own response text.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    IntegrationError,
    NotConfigured,
    ProviderError,
    UnknownProviderError,
    provider_error_from_response,
    transient_from_httpx,
)
from ..credentials.resolver import CredentialResolver
from .anthropic_provider import AnthropicProvider
from .base import AIProvider, AIProviderId
from .gemini import GeminiProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

TEST_PROMPT = 'Say "OK" and nothing else.'

ProviderRef = Union[AIProviderId, str]


def default_providers(config: Optional[Settings] = None) -> dict[AIProviderId, AIProvider]:
    return {
        AIProviderId.ANTHROPIC: AnthropicProvider(config),
        AIProviderId.GEMINI: GeminiProvider(config),
        AIProviderId.OPENAI: OpenAIProvider(config),
    }


@dataclass
class GenerationResult:
    text: str
    provider_id: AIProviderId
    model: str
    latency_ms: int

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "provider": self.provider_id.value,
            "model": self.model,
            "latency_ms": self.latency_ms,
        }


@dataclass
class ProviderTestResult:
    provider_id: AIProviderId
    success: bool
    message: str
    latency_ms: int = 0
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider_id.value,
            "success": self.success,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "error_code": self.error_code,
        }


@dataclass
class ProviderStatus:
    provider_id: AIProviderId
    name: str
    configured: bool
    message: str

    @property
    def status(self) -> str:
        return "ready" if self.configured else "unconfigured"

    def to_dict(self) -> dict:
        return {
            "id": self.provider_id.value,
            "name": self.name,
            "configured": self.configured,
            "status": self.status,
            "message": self.message,
        }


class AIProviderSelector:
    """
    Chooses a configured text provider for a workspace and calls it.

    Usage:
        selector = AIProviderSelector(resolver)
        result = await selector.generate("Write a hook", workspace_id="ws_1")
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        providers: Optional[dict[AIProviderId, AIProvider]] = None,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.resolver = resolver
        self.config = config or default_settings
        self.providers = providers or default_providers(self.config)
        self.priority = [AIProviderId(p) for p in self.config.ai_provider_priority]
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client

    def _provider(self, provider_id: ProviderRef) -> AIProvider:
        try:
            provider = self.providers[AIProviderId(provider_id)]
        except (ValueError, KeyError):
            raise UnknownProviderError(f"Unknown AI provider: {provider_id}") from None
        return provider

    async def select_provider(self, workspace_id: str) -> Optional[AIProviderId]:
        """First provider in priority order whose credential resolves, or None."""
        for provider_id in self.priority:
            if provider_id not in self.providers:
                continue
            if await self.resolver.resolve_or_none(provider_id.value, workspace_id) is not None:
                return provider_id
        return None

    async def call_provider(
        self,
        provider_id: ProviderRef,
        prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        *,
        workspace_id: str,
    ) -> str:
        """
        Call one provider and return the extracted text ("" if absent).

        Raises:
            NotConfigured: no credential for this provider
            ProviderError: the provider rejected the call (carries the status)
            TransientNetworkError: timeout or connection failure
        """
        provider = self._provider(provider_id)
        credential = await self.resolver.resolve(provider.provider_id.value, workspace_id)
        request = provider.build_request(
            prompt,
            credential.value,
            max_tokens=max_tokens,
            temperature=temperature,
        )

        client = await self._get_client()
        try:
            response = await client.post(
                request.url,
                headers=request.headers,
                json=request.body,
                params=request.params or None,
            )
        except httpx.HTTPError as e:
            raise transient_from_httpx(e, provider.display_name) from e

        if response.status_code >= 400:
            error = provider_error_from_response(response, provider.display_name)
            error.provider_id = provider.provider_id.value
            logger.warning(f"{provider.display_name} call failed: {response.status_code}")
            raise error

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"{provider.display_name} returned a non-JSON body")
            data = None
        return provider.extract_text(data)

    async def generate(
        self,
        prompt: str,
        workspace_id: str,
        *,
        provider_id: Optional[ProviderRef] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> GenerationResult:
        """
        Generate text with the selected (or given) provider.

        Raises:
            NotConfigured: no provider is configured for the workspace
            ProviderError: the call failed, or the response held no text
                (code ``EMPTY_RESPONSE``)
        """
        if provider_id:
            selected: Optional[AIProviderId] = self._provider(provider_id).provider_id
        else:
            selected = await self.select_provider(workspace_id)
        if selected is None:
            raise NotConfigured(
                "No AI provider configured. Add an Anthropic, Gemini or OpenAI key.",
                workspace_id=workspace_id,
            )

        provider = self._provider(selected)
        start = time.perf_counter()
        text = await self.call_provider(
            selected,
            prompt,
            max_tokens,
            temperature,
            workspace_id=workspace_id,
        )
        latency_ms = int((time.perf_counter() - start) * 1000)

        if not text.strip():
            raise ProviderError(
                f"{provider.display_name} returned an empty response",
                code="EMPTY_RESPONSE",
                provider_id=selected.value,
            )
        logger.info(f"Generated {len(text)} chars with {selected.value} in {latency_ms}ms")
        return GenerationResult(text=text, provider_id=selected, model=provider.model, latency_ms=latency_ms)

    async def test_provider(self, provider_id: ProviderRef, workspace_id: str) -> ProviderTestResult:
        """Send a minimal prompt and report success and latency. Never raises for call failures."""
        provider = self._provider(provider_id)
        start = time.perf_counter()
        try:
            await self.call_provider(
                provider.provider_id,
                TEST_PROMPT,
                max_tokens=10,
                temperature=0.0,
                workspace_id=workspace_id,
            )
        except IntegrationError as e:
            return ProviderTestResult(
                provider_id=provider.provider_id,
                success=False,
                message=e.message,
                latency_ms=int((time.perf_counter() - start) * 1000),
                error_code=e.code,
            )
        return ProviderTestResult(
            provider_id=provider.provider_id,
            success=True,
            message=f"{provider.display_name} is working",
            latency_ms=int((time.perf_counter() - start) * 1000),
        )

    async def provider_statuses(self, workspace_id: str) -> list[ProviderStatus]:
        """Configuration state of every provider, in priority order."""
        statuses = []
        for provider_id in self.priority:
            provider = self.providers.get(provider_id)
            if provider is None:
                continue
            credential = await self.resolver.resolve_or_none(provider_id.value, workspace_id)
            statuses.append(ProviderStatus(
                provider_id=provider_id,
                name=provider.display_name,
                configured=credential is not None,
                message=f"Using {credential.source.value} key" if credential else "No API key configured",
            ))
        return statuses

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
