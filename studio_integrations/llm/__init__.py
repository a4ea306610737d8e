"""AI text providers and provider selection."""
from .anthropic_provider import AnthropicProvider
from .base import AIProvider, AIProviderId, AIRequest
from .gemini import GeminiProvider
from .openai_provider import OpenAIProvider
from .selector import (
    AIProviderSelector,
    GenerationResult,
    ProviderStatus,
    ProviderTestResult,
    default_providers,
)

__all__ = [
    "AIProvider",
    "AIProviderId",
    "AIProviderSelector",
    "AIRequest",
    "AnthropicProvider",
    "GeminiProvider",
    "GenerationResult",
    "OpenAIProvider",
    "ProviderStatus",
    "ProviderTestResult",
    "default_providers",
]
