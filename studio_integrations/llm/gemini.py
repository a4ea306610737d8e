"""Google Gemini generateContent API."""
from typing import Any

from .base import AIProvider, AIProviderId, AIRequest


class GeminiProvider(AIProvider):
    """
    Gemini via the public Generative Language API.

    The key travels as the ``key`` query parameter, not as a header.
    """

    provider_id = AIProviderId.GEMINI
    display_name = "Google Gemini"

    def default_model(self) -> str:
        return self.config.gemini_model

    def build_request(self, prompt, api_key, *, max_tokens, temperature) -> AIRequest:
        return AIRequest(
            url=f"{self.config.gemini_api_base}/models/{self.model}:generateContent",
            headers={"Content-Type": "application/json"},
            body={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "maxOutputTokens": max_tokens,
                    "temperature": temperature,
                },
            },
            params={"key": api_key},
        )

    def extract_text(self, data: Any) -> str:
        """Text at ``candidates[0].content.parts[0].text``."""
        if not isinstance(data, dict):
            return ""
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        if not isinstance(content, dict):
            return ""
        parts = content.get("parts")
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            return ""
        text = parts[0].get("text")
        return text if isinstance(text, str) else ""
