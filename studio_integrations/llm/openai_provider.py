"""OpenAI Chat Completions API."""
from typing import Any

from .base import AIProvider, AIProviderId, AIRequest


class OpenAIProvider(AIProvider):
    provider_id = AIProviderId.OPENAI
    display_name = "OpenAI GPT-4"

    def default_model(self) -> str:
        return self.config.openai_model

    def build_request(self, prompt, api_key, *, max_tokens, temperature) -> AIRequest:
        return AIRequest(
            url=self.config.openai_api_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            body={
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [
                    {"role": "system", "content": self.config.openai_system_prompt},
                    {"role": "user", "content": prompt},
                ],
            },
        )

    def extract_text(self, data: Any) -> str:
        """Text at ``choices[0].message.content``."""
        if not isinstance(data, dict):
            return ""
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""
