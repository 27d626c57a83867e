"""
Thin ``httpx`` transport shared by the HTTP adapters.

Maps every transport-level outcome onto the error contract:

  - body not JSON-encodable       -> ``InvalidRequestEncoding``
  - connect/read/timeout failures -> ``TransportFailure``
  - non-2xx status                -> ``UnsuccessfulStatus`` (+ decoded payload)
  - unexpected Content-Type       -> ``InvalidContentType``

One attempt per call: retries, pooling policy and caching are left to the
caller (or to a custom ``httpx`` transport).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable

import httpx

from unillm.errors import (
    InvalidContentType,
    InvalidRequestEncoding,
    StreamDecodeFailed,
    TransportFailure,
    UnsuccessfulStatus,
)

logger = logging.getLogger(__name__)

ErrorDecoder = Callable[[str], Any]


class HTTPTransport:
    """
    Parameters
    ----------
    base_url:
        Root URL; request paths are joined onto it.
    headers:
        Headers sent with every request (auth, versioning).
    timeout:
        Per-request timeout in seconds.
    decode_error_payload:
        Turns a non-success body into a vendor payload (or ``None``).
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 120.0,
        decode_error_payload: ErrorDecoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._decode_error_payload = decode_error_payload
        self._client = httpx.AsyncClient(
            timeout=timeout, transport=transport, headers=self._headers
        )

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _encode(body: dict) -> bytes:
        try:
            return json.dumps(body, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise InvalidRequestEncoding(f"Request body is not JSON-encodable: {exc}") from exc

    def _error_payload(self, text: str) -> Any:
        if self._decode_error_payload is None or not text:
            return None
        return self._decode_error_payload(text)

    @staticmethod
    def _check_content_type(response: httpx.Response, expected: tuple[str, ...]) -> None:
        content_type = response.headers.get("content-type")
        if not expected or content_type is None:
            return
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type not in expected:
            raise InvalidContentType(content_type, expected)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def post_json(
        self,
        path: str,
        body: dict,
        expected_types: tuple[str, ...] = ("application/json",),
    ) -> Any:
        """POST *body* and return the decoded JSON response."""
        content = self._encode(body)
        url = self.url(path)
        try:
            response = await self._client.post(
                url, content=content, headers={"Content-Type": "application/json"}
            )
        except httpx.TransportError as exc:
            raise TransportFailure(f"POST {url} failed: {exc}") from exc

        if not response.is_success:
            raise UnsuccessfulStatus(
                response.status_code, self._error_payload(response.text)
            )
        self._check_content_type(response, expected_types)
        try:
            return json.loads(response.text)
        except ValueError as exc:
            raise StreamDecodeFailed(response.text, exc) from exc

    async def stream_lines(
        self,
        path: str,
        body: dict,
        expected_types: tuple[str, ...] = (),
    ) -> AsyncIterator[str]:
        """POST *body* and yield the response body line by line."""
        content = self._encode(body)
        url = self.url(path)
        try:
            async with self._client.stream(
                "POST", url, content=content,
                headers={"Content-Type": "application/json"},
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise UnsuccessfulStatus(
                        response.status_code, self._error_payload(response.text)
                    )
                self._check_content_type(response, expected_types)
                async for line in response.aiter_lines():
                    yield line
        except httpx.TransportError as exc:
            raise TransportFailure(f"stream {url} failed: {exc}") from exc
