"""HTTP client abstraction for registry reads.

This module provides:
- HttpClient: Protocol for the GET requests the release makes (injectable)
- RealHttpClient: urllib implementation
- MockHttpClient: canned responses for tests

Only reads go over raw HTTP (metadata documents and pings).
Writes always go through `npm publish` so registry-specific upload
protocols stay npm's problem.
"""

from __future__ import annotations

import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from pinrel.core.result import Err, Ok, Result

__all__ = [
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    "auth_headers",
]


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors)
        message: Human-readable error message
    """

    url: str
    status: int
    message: str

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


def auth_headers(token: str | None) -> dict[str, str]:
    """Registry auth headers for a credential.

    Artifactory accepts either an API key header or a bearer token depending
    on the token type; sending both works for both, and Verdaccio ignores
    the unknown one.
    """
    if not token:
        return {}
    return {
        "X-JFrog-Art-Api": token,
        "Authorization": f"Bearer {token}",
    }


@runtime_checkable
class HttpClient(Protocol):
    def get_text(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[str, HttpError]:
        """Fetch URL and return the body decoded as UTF-8."""
        ...


class RealHttpClient:
    """urllib-based client with system certificates and a fixed timeout."""

    def __init__(self, timeout: float = 30.0, user_agent: str = "pinrel") -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def _request(self, url: str, headers: Mapping[str, str] | None) -> Result[bytes, HttpError]:
        merged = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if headers:
            merged.update(headers)
        try:
            req = urllib.request.Request(url, headers=merged)
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                return Ok(response.read())
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=str(e.reason)))
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Request timed out"))
        except ValueError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))

    def get_text(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[str, HttpError]:
        result = self._request(url, headers)
        if isinstance(result, Err):
            return result

        try:
            return Ok(result.value.decode("utf-8"))
        except UnicodeDecodeError as e:
            return Err(HttpError(url=url, status=0, message=f"Decode error: {e}"))


class MockHttpClient:
    """Mock HTTP client for testing.

    Usage:
        client = MockHttpClient()
        client.set_text("https://r.example/@acme%2Fcore", '{"versions": {}}')
        result = client.get_text("https://r.example/@acme%2Fcore")
    """

    def __init__(self) -> None:
        self._text_responses: dict[str, str | HttpError] = {}
        self.calls: list[tuple[str, str]] = []
        self.headers_seen: list[dict[str, str]] = []

    def set_text(self, url: str, response: str | HttpError) -> None:
        self._text_responses[url] = response

    def get_text(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[str, HttpError]:
        self.calls.append(("get_text", url))
        self.headers_seen.append(dict(headers or {}))

        response = self._text_responses.get(url)
        if response is None:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)
