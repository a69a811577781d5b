"""Remote script source.

The repository talks to the script server through the ScriptSource protocol:

    async def latest_version(self) -> str: ...
    async def fetch(self, version: str, language: str) -> dict | None: ...

`fetch` returns None when the server has no document for that language, so
the repository can retry with its default language.

Two implementations are provided:

    HttpScriptSource    — httpx client for the script server.
                          GET {base}/scripts/latest              → {"version": "..."}
                          GET {base}/scripts/{version}/{lang}    → script document
    StaticScriptSource  — serves documents held in memory. Used by the demo
                          and by tests that need a controllable remote.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ScriptSource(Protocol):
    async def latest_version(self) -> str: ...

    async def fetch(self, version: str, language: str) -> dict[str, Any] | None: ...


# ---------------------------------------------------------------------------
# HttpScriptSource
# ---------------------------------------------------------------------------

class HttpScriptSource:
    """Async HTTP client for the script server.

    Args:
        base_url: Server root, e.g. "https://scripts.example.com/api".
        api_key:  Bearer token, or empty string if not required.
        timeout:  HTTP timeout in seconds.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _get(self, path: str) -> Any | None:
        url = f"{self._base_url}{path}"
        logger.debug("script server GET %s", url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, headers=self._headers())
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise RemoteUnavailable(f"Cannot connect to script server at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise RemoteUnavailable(
                f"Script server returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"Script server timed out after {self._timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteUnavailable(f"Script server request failed: {e}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise RemoteUnavailable("Script server returned invalid JSON") from e

    async def latest_version(self) -> str:
        data = await self._get("/scripts/latest")
        if not isinstance(data, dict) or not data.get("version"):
            raise RemoteUnavailable("Unexpected response format from script server")
        return str(data["version"])

    async def fetch(self, version: str, language: str) -> dict[str, Any] | None:
        data = await self._get(f"/scripts/{version}/{language}")
        if data is not None and not isinstance(data, dict):
            raise RemoteUnavailable("Unexpected script document from script server")
        return data


# ---------------------------------------------------------------------------
# StaticScriptSource — in-memory documents
# ---------------------------------------------------------------------------

class StaticScriptSource:
    """Serves one version of the script in several languages, with no network.

    Set `available = False` to simulate an unreachable server.
    """

    def __init__(self, version: str, documents: dict[str, dict[str, Any]]) -> None:
        self.version = version
        self.documents = documents
        self.available = True
        self.calls: list[str] = []

    def _check(self, call: str) -> None:
        self.calls.append(call)
        if not self.available:
            raise RemoteUnavailable("Static source is offline")

    async def latest_version(self) -> str:
        self._check("latest_version")
        return self.version

    async def fetch(self, version: str, language: str) -> dict[str, Any] | None:
        self._check(f"fetch:{version}:{language}")
        if version != self.version:
            return None
        return self.documents.get(language)


# ---------------------------------------------------------------------------
# RemoteUnavailable — raised for every network and protocol failure
# ---------------------------------------------------------------------------

class RemoteUnavailable(RuntimeError):
    """Raised when the script server cannot be reached or answers unexpectedly."""
