import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from vaymn.config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_COVER_HINT = "https://picsum.photos/300/450"

# Structured output schema for generateContent
BOOK_DETAILS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "author": {"type": "STRING"},
        "genre": {"type": "STRING"},
        "description": {"type": "STRING"},
        "coverUrl": {
            "type": "STRING",
            "description": f"A placeholder image URL from {PLACEHOLDER_COVER_HINT} if real one not available",
        },
    },
    "required": ["author", "genre", "description"],
}


@dataclass
class BookDetails:
    """Book metadata suggested by the model"""
    author: str
    genre: str
    description: str
    cover_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": self.author,
            "genre": self.genre,
            "description": self.description,
            "cover_url": self.cover_url
        }


class GeminiService:
    """Book details lookup backed by the Gemini generateContent REST endpoint.

    Every failure (no key, network error, bad status, unparseable answer) is
    logged and reported as ``None``; callers never see an exception.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = settings.gemini_base_url
        self.timeout = settings.gemini_timeout
        self._transport = transport

    def is_available(self) -> bool:
        return bool(self.api_key) and settings.enable_ai_features

    def _build_payload(self, title: str) -> Dict[str, Any]:
        prompt = (
            f'Provide details for the book titled "{title}". '
            "If exact details aren't known, provide plausible generic details."
        )
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": BOOK_DETAILS_SCHEMA,
            },
        }

    async def _make_api_request(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key or "",
            "Content-Type": "application/json"
        }

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error(f"Gemini request timed out after {self.timeout}s")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            return None

        response_time_ms = int((time.time() - start_time) * 1000)
        if response.status_code != 200:
            logger.error(f"Gemini API error: {response.status_code} - {response.text[:200]}")
            return None

        logger.info(f"Gemini API call succeeded: model={self.model}, time={response_time_ms}ms")
        try:
            return response.json()
        except ValueError:
            logger.error("Gemini API returned a non-JSON body")
            return None

    @staticmethod
    def _extract_text(body: Dict[str, Any]) -> Optional[str]:
        candidates = body.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts = [p.get("text", "") for p in parts if isinstance(p, dict)]
        text = "".join(texts).strip()
        return text or None

    async def generate_book_details(self, title: str) -> Optional[BookDetails]:
        """
        Suggest author, genre, description and a cover for a title

        Args:
            title: Book title as typed by the librarian

        Returns:
            BookDetails, or None when the service is unavailable or has no answer
        """
        if not title or not title.strip():
            return None
        if not self.is_available():
            logger.warning("Gemini API key missing or AI features disabled")
            return None

        body = await self._make_api_request(self._build_payload(title.strip()))
        if not body:
            return None

        text = self._extract_text(body)
        if not text:
            logger.info(f"Gemini returned no details for {title!r}")
            return None

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.error(f"Gemini answer is not valid JSON: {text[:200]}")
            return None
        if not isinstance(data, dict):
            return None

        author = str(data.get("author") or "").strip()
        genre = str(data.get("genre") or "").strip()
        description = str(data.get("description") or "").strip()
        if not (author or genre or description):
            return None

        cover_url = str(data.get("coverUrl") or data.get("cover_url") or "").strip() or None
        return BookDetails(author=author, genre=genre, description=description, cover_url=cover_url)
