"""
News generator: LLM facade (Grok over HTTP, Gemini as alternative) with mock mode.
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
import requests

from backend.models.entities import GeneratorResponse, RawCandidate
from backend.services.errors import ConfigurationError, GeneratorError, MalformedResponse

logger = logging.getLogger(__name__)

DEFAULT_GROK_URL = "https://api.x.ai/v1"

SYSTEM_PROMPT = (
    "You are a financial news aggregator. Extract and structure news articles about "
    "stocks and companies. Return data in JSON format."
)

RESPONSE_SHAPE = """{
  "items": [
    {
      "headline": "News headline",
      "summary": "Brief summary",
      "source": "Source name (e.g., CNBC, Twitter, etc.)",
      "stockSymbol": "Stock symbol if mentioned",
      "stockName": "Full company name",
      "sentiment": "positive|negative|neutral",
      "confidence": "High|Medium|Low",
      "date": "YYYY-MM-DD",
      "url": "Source URL if available"
    }
  ],
  "sources": ["list", "of", "sources", "checked"],
  "timestamp": "ISO timestamp"
}"""


class NewsGenerator:
    """
    Generator facade with:
    - provider selection (grok | gemini)
    - basic params (temperature/max_tokens/timeout)
    - lenient parsing of the free-text reply
    - mock mode for local runs and tests

    One attempt per call, no retries.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        use_mock: bool = False,
    ):
        self.provider = (provider or os.getenv("NEWS_LLM_PROVIDER", "grok")).lower()
        if self.provider not in ("grok", "gemini"):
            raise ConfigurationError(f"Unknown news generator provider '{self.provider}'")

        if self.provider == "grok":
            self.api_key = api_key or os.getenv("GROK_API_KEY")
            self.api_url = (api_url or os.getenv("GROK_API_URL") or DEFAULT_GROK_URL).rstrip("/")
            self.model_name = model_name or os.getenv("GROK_MODEL", "grok-beta")
        else:
            self.api_key = api_key or os.getenv("GEMINI_API_KEY")
            self.api_url = None
            self.model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

        self.temperature = float(os.getenv("NEWS_LLM_TEMPERATURE", temperature or 0.7))
        self.max_tokens = int(os.getenv("NEWS_LLM_MAX_TOKENS", max_tokens or 4000))
        self.timeout = float(os.getenv("NEWS_LLM_TIMEOUT", timeout or 30))

        self.use_mock = use_mock
        self.last_raw: Optional[str] = None
        self.client = None

        if self.use_mock:
            return
        if not self.api_key:
            env_name = "GROK_API_KEY" if self.provider == "grok" else "GEMINI_API_KEY"
            raise ConfigurationError(f"{env_name} is not configured")
        if self.provider == "gemini":
            genai.configure(api_key=self.api_key)
            self.client = genai.GenerativeModel(self.model_name, system_instruction=SYSTEM_PROMPT)

    # --- High-level tasks ---
    def build_prompt(self, sources: Sequence[str], tickers: Optional[Sequence[str]] = None) -> str:
        source_list = ", ".join(sources)
        stock_filter = ""
        if tickers:
            stock_filter = f" Focus on these stock symbols: {', '.join(tickers)}."
        return (
            f"Fetch the latest financial news from these sources: {source_list}.{stock_filter}\n\n"
            f"Please return a JSON object with the following structure:\n{RESPONSE_SHAPE}\n\n"
            "Extract real, current news. If no recent news is found, return an empty items array."
        )

    def fetch_news(self, sources: Sequence[str], tickers: Optional[Sequence[str]] = None) -> GeneratorResponse:
        """
        Ask the generator for news from `sources`.

        Raises GeneratorError when the call itself fails. Unparseable content
        is not an error: it yields an empty response (see parse_response).
        """
        prompt = self.build_prompt(sources, tickers)
        if self.use_mock:
            content = self._mock_content(sources, tickers)
        elif self.provider == "grok":
            content = self._run_grok(prompt)
        else:
            content = self._run_gemini(prompt)
        self.last_raw = content
        return self.parse_response(content, sources)

    def fetch_from_source(self, source: str, tickers: Optional[Sequence[str]] = None) -> List[RawCandidate]:
        """Single-source fetch; failures are logged and yield no candidates."""
        try:
            return self.fetch_news([source], tickers).items
        except GeneratorError as e:
            logger.error(f"Error fetching news from {source}: {e}")
            return []

    def parse_response(self, content: Any, sources: Sequence[str]) -> GeneratorResponse:
        """Lenient parse: anything that is not {"items": [...]} becomes an empty result."""
        try:
            payload = self._extract_payload(content)
        except MalformedResponse as e:
            logger.warning(f"Unparseable generator reply ({e}). Raw: {str(content or '')[:200]}")
            return GeneratorResponse(items=[], sources=list(sources), timestamp=_now_iso())

        today = datetime.utcnow().date().isoformat()
        items = []
        for raw in payload["items"]:
            if not isinstance(raw, dict):
                continue
            item = {k: (v if v is None or isinstance(v, str) else str(v)) for k, v in raw.items()}
            headline = item.get("headline") or "No headline"
            items.append(RawCandidate(
                headline=headline,
                summary=item.get("summary") or headline,
                source=item.get("source") or "Unknown",
                stock_symbol=item.get("stockSymbol") or item.get("stock_symbol"),
                stock_name=item.get("stockName") or item.get("stock_name"),
                sentiment=item.get("sentiment") or "neutral",
                confidence=item.get("confidence") or "Medium",
                date=item.get("date") or today,
                url=item.get("url"),
            ))

        reported_sources = payload.get("sources")
        if not isinstance(reported_sources, list):
            reported_sources = list(sources)
        timestamp = payload.get("timestamp")
        return GeneratorResponse(
            items=items,
            sources=[str(s) for s in reported_sources],
            timestamp=timestamp if isinstance(timestamp, str) and timestamp else _now_iso(),
        )

    # --- Internal helpers ---
    def _strip_code_fences(self, text: str) -> str:
        """Drop one leading ``` line and one trailing ``` line, if present."""
        t = text.strip()
        if not t.startswith("```"):
            return t
        lines = t.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        return "\n".join(lines)

    def _extract_payload(self, content: Any) -> Dict[str, Any]:
        if not content:
            raise MalformedResponse("empty content")
        if not isinstance(content, str):
            raise MalformedResponse(f"content is {type(content).__name__}, not text")
        try:
            parsed = json.loads(self._strip_code_fences(content))
        except ValueError as e:
            raise MalformedResponse(f"invalid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise MalformedResponse("top-level value is not an object")
        if not isinstance(parsed.get("items"), list):
            raise MalformedResponse("missing 'items' array")
        return parsed

    def _run_grok(self, prompt: str) -> str:
        endpoint = f"{self.api_url}/chat/completions"
        body = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            response = requests.post(endpoint, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Grok request failed: {e}")
            raise GeneratorError(f"Grok request failed: {e}") from e

        if not response.ok:
            logger.error(f"Grok API error: {response.status_code}")
            raise GeneratorError(
                f"Grok API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GeneratorError("Grok API returned a non-JSON body", status_code=response.status_code) from e

        if not isinstance(data, dict):
            raise GeneratorError("Malformed Grok API response", status_code=response.status_code)
        choices = data.get("choices") or [{}]
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise GeneratorError("Malformed Grok API response", status_code=response.status_code)
        message = choices[0].get("message") or {}
        if not isinstance(message, dict):
            raise GeneratorError("Malformed Grok API response", status_code=response.status_code)
        content = message.get("content")
        if not content:
            raise GeneratorError("No content in Grok API response", status_code=response.status_code)
        return content

    def _run_gemini(self, prompt: str) -> str:
        try:
            response = self.client.generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                },
                request_options={"timeout": self.timeout},
            )
            text = getattr(response, "text", None) or ""
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise GeneratorError(f"Gemini request failed: {e}") from e
        if not text:
            raise GeneratorError("No content in Gemini response")
        return text

    def _mock_content(self, sources: Sequence[str], tickers: Optional[Sequence[str]]) -> str:
        today = datetime.utcnow().date().isoformat()
        symbols = list(tickers or []) or ["ACME"]
        items = []
        for i, source in enumerate(sources):
            symbol = symbols[i % len(symbols)]
            items.append({
                "headline": f"{symbol} shares move on {source} report (mock)",
                "summary": f"Mock summary from {source}.",
                "source": source,
                "stockSymbol": symbol,
                "stockName": symbol,
                "sentiment": ("positive", "negative", "neutral")[i % 3],
                "confidence": "Medium",
                "date": today,
            })
        payload = {"items": items, "sources": list(sources), "timestamp": _now_iso()}
        return "```json\n" + json.dumps(payload, indent=2) + "\n```"


def _now_iso() -> str:
    return datetime.utcnow().isoformat()
