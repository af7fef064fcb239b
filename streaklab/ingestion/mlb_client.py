"""HTTP client for the MLB Stats API and Baseball Savant."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)
DEFAULT_TIMEOUT_SECONDS = 8
DEFAULT_RETRIES = 2
DEFAULT_BACKOFF_SECONDS = 0.5
DEFAULT_USER_AGENT = "streaklab/1.0"
MAX_BODY_SNIPPET = 300


def is_error_payload(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("ok") is False


class MLBClient:
    """Blocking client; callers run it off the event loop.

    Failures never raise. They come back as a controlled error dict with
    ``ok=False`` so callers can decide how to degrade.
    """

    def __init__(
        self,
        base_url: str,
        savant_base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.savant_base_url = savant_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retries = max(1, retries)

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        result = self._get(url, params, accept="application/json")
        if is_error_payload(result):
            return result
        response = result["response"]
        try:
            payload = response.json()
        except ValueError:
            logger.error("MLB API returned non-JSON body url=%s", url)
            return {
                "ok": False,
                "error": "MLB API returned non-JSON response",
                "status": response.status_code,
                "body": response.text[:MAX_BODY_SNIPPET],
                "url": url,
            }
        if not isinstance(payload, dict):
            return {
                "ok": False,
                "error": "MLB API returned unexpected payload type",
                "status": response.status_code,
                "url": url,
            }
        return payload

    def get_savant_csv(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.savant_base_url}{path}"
        result = self._get(url, params, accept="text/csv")
        if is_error_payload(result):
            return result
        return {"ok": True, "text": result["response"].text, "url": url}

    def _get(self, url: str, params: dict[str, Any] | None, accept: str) -> dict[str, Any]:
        headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": accept,
        }
        clean_params = {key: str(value) for key, value in (params or {}).items() if value is not None}

        last_error: str | None = None
        for attempt in range(self.retries):
            try:
                response = requests.get(
                    url,
                    params=clean_params,
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = str(exc)
                logger.warning(
                    "GET %s failed (attempt %d/%d): %s",
                    url,
                    attempt + 1,
                    self.retries,
                    last_error,
                )
                if attempt < self.retries - 1:
                    time.sleep(DEFAULT_BACKOFF_SECONDS * (2**attempt))
                continue
            except requests.RequestException as exc:
                logger.error("GET %s failed: %s", url, exc)
                return {"ok": False, "error": f"Request failed: {exc}", "url": url}

            if response.status_code != 200:
                body_snippet = response.text[:MAX_BODY_SNIPPET]
                logger.error(
                    "GET %s non-200 status=%s body=%s",
                    url,
                    response.status_code,
                    body_snippet,
                )
                return {
                    "ok": False,
                    "error": "Provider returned non-200 response",
                    "status": response.status_code,
                    "body": body_snippet,
                    "url": url,
                }
            return {"ok": True, "response": response}

        return {
            "ok": False,
            "error": "Request failed after retries",
            "details": last_error,
            "url": url,
        }
