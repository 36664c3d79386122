"""Async client for the Exa semantic search API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from app.config import settings


class ExaError(RuntimeError):
    """Base error for Exa client failures."""

    def __init__(self, message: str, code: str = "EXA_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ExaRateLimitError(ExaError):
    """Raised when Exa responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Exa") -> None:
        super().__init__(message, code="EXA_429")


class ExaTimeoutError(ExaError):
    """Raised when an Exa request times out."""

    def __init__(self, message: str = "Exa request timed out") -> None:
        super().__init__(message, code="EXA_TIMEOUT")


class ExaSchemaError(ExaError):
    """Raised when the Exa response is not shaped as expected."""

    def __init__(self, message: str = "Unexpected Exa response schema") -> None:
        super().__init__(message, code="EXA_SCHEMA_ERR")


class ExaClient:
    """Minimal async Exa API client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("EXA_API_KEY is required to create an ExaClient.")
        self._api_key = api_key
        self._base_url = (base_url or settings.exa_base_url).rstrip("/")
        self._timeout = timeout or settings.exa_timeout_seconds
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._timeout)

    @classmethod
    def from_settings(cls, *, http_client: httpx.AsyncClient | None = None) -> ExaClient | None:
        """Build a client from EXA_API_KEY, or None when the key is not configured."""
        if not settings.exa_api_key:
            return None
        return cls(settings.exa_api_key, http_client=http_client)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def search(
        self,
        *,
        query: str,
        num_results: int = 10,
        start_published_date: datetime | None = None,
        autoprompt: bool = True,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Run a neural search and return the raw result objects."""
        if num_results <= 0:
            raise ValueError("num_results must be a positive integer.")

        payload: dict[str, Any] = {
            "query": query,
            "numResults": num_results,
            "type": "neural",
            "useAutoprompt": autoprompt,
            "contents": {
                "text": {"maxCharacters": 1000},
                "highlights": {"numSentences": 3},
            },
        }
        if start_published_date is not None:
            payload["startPublishedDate"] = start_published_date.isoformat()
        headers = {"x-api-key": self._api_key, "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                f"{self._base_url}/search",
                json=payload,
                headers=headers,
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ExaTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise ExaError(f"HTTP error calling Exa: {exc}") from exc

        if response.status_code == 429:
            raise ExaRateLimitError()
        if response.status_code in (408, 504):
            raise ExaTimeoutError()
        if response.status_code >= 400:
            detail: str | None = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    detail = body.get("message") or body.get("error") or body.get("detail")
            except ValueError:
                detail = response.text[:200]
            message = f"Exa request failed: {response.status_code}"
            if detail:
                message = f"{message} - {detail}"
            raise ExaError(message, code=response.headers.get("x-exa-error-code", "EXA_ERROR"))

        try:
            data = response.json()
        except ValueError as exc:
            raise ExaSchemaError("Failed to decode Exa response JSON.") from exc
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ExaSchemaError("`results` missing from Exa response.")
        if not all(isinstance(entry, dict) for entry in results):
            raise ExaSchemaError("Entries in `results` must be JSON objects.")
        return results

    async def __aenter__(self) -> ExaClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
