"""Upstream score API wrapper — GET {base_url}/events/{event_id}/score."""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from .models import ScoreData
from .ports import FetchError, ScoreFetcher

logger = logging.getLogger("event_tracker.client")


class HttpScoreFetcher(ScoreFetcher):
    def __init__(self, base_url: str, timeout: float = 3.0,
                 session: Optional[requests.Session] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout  = timeout
        self._http = session or requests.Session()
        self._http.headers.update({"Accept": "application/json"})

    def score_url(self, event_id: str) -> str:
        return f"{self._base_url}/events/{quote(event_id, safe='')}/score"

    def fetch(self, event_id: str) -> ScoreData:
        """Return the current score, or raise FetchError.

        Timeouts, non-2xx responses, invalid JSON and bodies without a
        currentScore are all reported as FetchError so the worker can
        count them against its retry budget.
        """
        url = self.score_url(event_id)
        logger.debug("Calling upstream: %s", url)
        try:
            resp = self._http.get(url, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except ValueError as exc:
            raise FetchError(f"invalid JSON from {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise FetchError(f"request to {url} failed: {exc}") from exc

        if not isinstance(data, dict) or not data:
            raise FetchError(f"empty response from {url}")
        score = data.get("currentScore")
        if score is None or score == "":
            raise FetchError(f"response from {url} has no currentScore")

        return ScoreData(
            event_id=data.get("eventId") or event_id,
            current_score=str(score),
        )

    def close(self) -> None:
        self._http.close()
