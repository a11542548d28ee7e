"""
HTTP Client

Read-only GET client for the price venues. Each response body is read in
full before returning, so a worker thread never keeps a connection open
after it has its answer.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

DEFAULT_USER_AGENT = "veris-oracle/0.1"


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    content: bytes
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_requests(cls, response: requests.Response) -> "HttpResponse":
        return cls(
            status_code=response.status_code,
            content=response.content,
            url=str(response.url),
            headers=dict(response.headers),
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body. Raises ValueError on malformed JSON."""
        return json.loads(self.content)

    def raise_for_status(self) -> None:
        if not self.ok:
            snippet = self.content[:80].decode("utf-8", errors="replace")
            raise HttpError(
                f"HTTP {self.status_code} from {self.url}: {snippet}",
                status_code=self.status_code,
            )


class HttpError(Exception):
    """Transport failure or non-2xx status from a venue."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HttpClient:
    """
    GET-only client shared by the price sources of one aggregator.

    Sources are fetched from a thread pool and requests.Session is not
    thread-safe, so every worker thread lazily gets its own session.

    Usage:
        with HttpClient(timeout=5.0) as http:
            price = http.get("https://api.binance.com/api/v3/ticker/price").json()
    """

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        user_agent: str = DEFAULT_USER_AGENT,
        proxy: Optional[str] = None,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.proxy = proxy
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is not None:
            return session

        session = requests.Session()
        session.headers.update({"User-Agent": self.user_agent, "Accept": "application/json"})
        if self.proxy:
            session.proxies = {"http": self.proxy, "https": self.proxy}
        self._local.session = session
        with self._lock:
            self._sessions.append(session)
        return session

    def get(
        self,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Raises:
            HttpError: DNS, connect, TLS or read-timeout failure
        """
        try:
            response = self._session().get(
                url,
                headers=headers,
                params=params,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as e:
            raise HttpError(f"{type(e).__name__}: {e}") from e
        return HttpResponse.from_requests(response)

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
