"""Note summarization through the Gemini generateContent API."""

import logging
from typing import Optional

import httpx

from securepad.config import Settings, get_settings
from securepad.errors import SummarizerError

log = logging.getLogger(__name__)

_PROMPT = (
    "Summarize the following note in a few concise bullet points. "
    "Keep the original language of the note.\n\n{text}"
)


class Summarizer:
    """
    Thin async client for the summarization service.
    transport is injectable so tests can use httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.summarizer_api_key)

    async def summarize(self, text: str) -> str:
        """Return a summary of text. Raises SummarizerError on any failure."""
        settings = self._settings
        if not self.configured:
            raise SummarizerError("Summarizer not configured (SECUREPAD_SUMMARIZER_API_KEY)")
        url = f"{settings.summarizer_base_url.rstrip('/')}/models/{settings.summarizer_model}:generateContent"
        payload = {"contents": [{"parts": [{"text": _PROMPT.format(text=text)}]}]}
        try:
            async with httpx.AsyncClient(
                timeout=settings.summarizer_timeout_seconds, transport=self._transport
            ) as client:
                r = await client.post(
                    url,
                    params={"key": settings.summarizer_api_key},
                    json=payload,
                )
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            log.warning("Summarizer returned status=%d", e.response.status_code)
            raise SummarizerError(f"Summarizer returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            log.warning("Summarizer request failed: %s", e)
            raise SummarizerError("Summarizer unreachable") from e
        try:
            parts = data["candidates"][0]["content"]["parts"]
            summary = "".join(p.get("text", "") for p in parts).strip()
        except (KeyError, IndexError, TypeError) as e:
            raise SummarizerError("Summarizer returned no summary") from e
        if not summary:
            raise SummarizerError("Summarizer returned no summary")
        log.info("Summarized %d chars into %d", len(text), len(summary))
        return summary
