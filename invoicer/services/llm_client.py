import time
from typing import Callable

import httpx
from loguru import logger

from ..core.config import Settings, settings
from .errors import CompletionResponseError, CompletionTransportError, InvoicerError

MAX_BACKOFF_SECONDS = 60.0


def retry_after_seconds(headers: httpx.Headers) -> float | None:
    """Seconds requested by a Retry-After header, or None when absent or unusable."""
    raw = headers.get("retry-after")
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        # HTTP-date form is not used by the completion API
        return None
    return seconds if seconds > 0 else None


class CompletionClient:
    """
    Minimal OpenAI-compatible chat completion client with bounded retries.

    Rate limiting (429) and network errors are retried with exponential
    backoff capped at 60 seconds; any other non-2xx status fails immediately.
    A call makes at most ``max_retries + 1`` attempts.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.groq.com/openai/v1",
        max_retries: int = 5,
        retry_base_ms: int = 1000,
        timeout: float = 120.0,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_base_ms = retry_base_ms
        self._http = http_client or httpx.Client(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Settings = settings, **kwargs) -> "CompletionClient":
        if not cfg.groq_api_key:
            raise InvoicerError("GROQ_API_KEY is not configured")
        return cls(
            api_key=cfg.groq_api_key.strip(),
            model=cfg.groq_model,
            base_url=cfg.groq_base_url,
            max_retries=cfg.groq_max_retries,
            retry_base_ms=cfg.groq_retry_base_ms,
            timeout=cfg.groq_timeout_seconds,
            **kwargs,
        )

    def backoff_delay(self, attempt: int) -> float:
        return min(MAX_BACKOFF_SECONDS, (self.retry_base_ms / 1000.0) * (2 ** attempt))

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one system + user exchange and return the trimmed reply text."""
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

        last_error = "no attempts made"
        for attempt in range(self.max_retries + 1):
            try:
                response = self._http.post(url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                last_error = f"network error: {exc}"
                if attempt >= self.max_retries:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning("Completion request failed, retrying", attempt=attempt + 1, delay=delay, error=str(exc))
                self._sleep(delay)
                continue

            if response.status_code == 429:
                last_error = "rate limited (429)"
                if attempt >= self.max_retries:
                    break
                delay = retry_after_seconds(response.headers) or self.backoff_delay(attempt)
                logger.warning("Completion API rate limited, backing off", attempt=attempt + 1, delay=delay)
                self._sleep(delay)
                continue

            if not 200 <= response.status_code < 300:
                raise CompletionResponseError(response.status_code, response.text[:500])

            try:
                choices = response.json().get("choices") or [{}]
                content = (choices[0].get("message") or {}).get("content") or ""
            except (ValueError, AttributeError, TypeError) as exc:
                raise CompletionResponseError(response.status_code, f"unexpected body: {response.text[:500]}") from exc
            if not isinstance(content, str):
                raise CompletionResponseError(response.status_code, f"unexpected content: {response.text[:500]}")
            return content.strip()

        raise CompletionTransportError(
            f"Completion call failed after {self.max_retries + 1} attempts: {last_error}"
        )

    def close(self) -> None:
        self._http.close()
