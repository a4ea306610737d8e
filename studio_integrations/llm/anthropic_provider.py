"""Anthropic Messages API."""
from typing import Any

from .base import AIProvider, AIProviderId, AIRequest


class AnthropicProvider(AIProvider):
    provider_id = AIProviderId.ANTHROPIC
    display_name = "Anthropic Claude"

    def default_model(self) -> str:
        return self.config.anthropic_model

    def build_request(self, prompt, api_key, *, max_tokens, temperature) -> AIRequest:
        # The Messages body here carries no temperature
        return AIRequest(
            url=self.config.anthropic_api_url,
            headers={
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": self.config.anthropic_version,
            },
            body={
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def extract_text(self, data: Any) -> str:
        """Text at ``content[0].text``."""
        if not isinstance(data, dict):
            return ""
        content = data.get("content")
        if not isinstance(content, list) or not content:
            return ""
        first = content[0]
        if not isinstance(first, dict):
            return ""
        text = first.get("text")
        return text if isinstance(text, str) else ""
