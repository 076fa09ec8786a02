"""Single-attempt HTTP fetcher for definition source images."""

from __future__ import annotations

import httpx

from utils.logging import get_logger

from gallery_builder.config import FetchConfig
from gallery_builder.errors import NetworkError

LOGGER = get_logger(__name__, extra={"component": "fetcher"})


class Fetcher:
    """Retrieve raw source bytes over HTTP.

    One shared :class:`httpx.Client` serves every worker thread. There is no
    retry: any failure surfaces to the caller as :class:`NetworkError`.
    """

    def __init__(self, config: FetchConfig | None = None, client: httpx.Client | None = None) -> None:
        self._config = config or FetchConfig()
        self._owns_client = client is None
        if client is None:
            limits = httpx.Limits(
                max_connections=self._config.max_concurrency,
                max_keepalive_connections=self._config.max_concurrency,
            )
            client = httpx.Client(
                timeout=self._config.timeout_seconds,
                follow_redirects=self._config.follow_redirects,
                limits=limits,
            )
        self._client = client
        self._headers = {"User-Agent": self._config.user_agent}

    def fetch(self, source: str) -> bytes:
        """GET ``source`` once and return the response body."""

        try:
            response = self._client.get(source, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(f"GET {source} returned HTTP {exc.response.status_code}") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError(f"GET {source} failed: {exc}") from exc

        LOGGER.debug("fetch_complete", extra={"source": source, "bytes": len(response.content)})
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()


__all__ = ["Fetcher"]
