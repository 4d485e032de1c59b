# modules/job_watch/lib/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

# Static header set shared with the browser renderer.
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "es-ES,es;q=0.9"


class HttpClient:
    """Shared HTTP session with retries and a browser-like header set."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = BROWSER_USER_AGENT,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept-Language": ACCEPT_LANGUAGE})

        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get_text(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text; raises requests.HTTPError on 4xx/5xx."""
        resp = self.session.get(url, headers=headers, timeout=timeout or self.timeout, **kwargs)
        resp.raise_for_status()
        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)
