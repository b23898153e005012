"""Bilingual book summaries from an OpenAI compatible chat completions API."""
import json
import logging
from typing import Dict, Optional

import httpx

from virtualib.config import settings
from virtualib.errors import ExternalServiceError

logger = logging.getLogger(__name__)

PROMPT = (
    'Please provide a brief summary for the book "{title}" by {author}. '
    "Provide the summary in two languages: Turkish and English. "
    'Return the response strictly as a valid JSON object with keys "summary_tr" and "summary_en". '
    "Do not include any other text or markdown formatting."
)


class BookSummarizer:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.timeout = timeout or settings.summarizer_timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate(self, title: str, author: str) -> Dict[str, str]:
        """Return ``{"summary_tr", "summary_en"}`` or raise ExternalServiceError."""
        if not self.enabled:
            raise ExternalServiceError("OpenAI API Key is missing on the server.")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": PROMPT.format(title=title, author=author)}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
                content = response.json()["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as e:
            logger.warning(f"Summary request for '{title}' rejected: {e.response.status_code}")
            raise ExternalServiceError(f"Summary generation failed: HTTP {e.response.status_code}")
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.warning(f"Summary request for '{title}' failed: {e}")
            raise ExternalServiceError("Summary generation failed")

        return self.parse(content)

    @staticmethod
    def parse(content: Optional[str]) -> Dict[str, str]:
        if not content:
            raise ExternalServiceError("No content received from the summarizer")
        # Models sometimes wrap the JSON in a markdown fence
        cleaned = content.replace("```json", "").replace("```", "").strip()
        try:
            data = json.loads(cleaned)
        except ValueError:
            logger.error(f"Could not parse summarizer response: {content[:200]}")
            raise ExternalServiceError("Failed to parse AI response")
        if not isinstance(data, dict):
            raise ExternalServiceError("Failed to parse AI response")
        return {
            "summary_tr": str(data.get("summary_tr") or ""),
            "summary_en": str(data.get("summary_en") or ""),
        }


summarizer = BookSummarizer()


def get_summarizer() -> BookSummarizer:
    return summarizer
