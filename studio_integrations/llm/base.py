"""Base AI text provider interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..core.config import Settings, settings as default_settings


class AIProviderId(str, Enum):
    """Supported text-generation providers."""
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OPENAI = "openai"


@dataclass
class AIRequest:
    """A fully shaped HTTP request for one provider."""
    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    # Query parameters; Gemini carries its key here
    params: dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"AIRequest(url={self.url!r}, body_keys={sorted(self.body)})"


class AIProvider(ABC):
    """
    One provider's wire format.

    Subclasses shape the request body and pull the generated text out of the
    provider's response envelope. Transport lives in the selector.
    """

    provider_id: AIProviderId
    display_name: str = "AI provider"

    def __init__(self, config: Optional[Settings] = None, model: Optional[str] = None):
        self.config = config or default_settings
        self.model = model or self.default_model()

    @abstractmethod
    def default_model(self) -> str:
        """Model used when none is given."""

    @abstractmethod
    def build_request(
        self,
        prompt: str,
        api_key: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> AIRequest:
        """Shape the request for this provider."""

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        """
        Pull the generated text from a response body.

        Returns "" when any field on the path is missing.
        """
