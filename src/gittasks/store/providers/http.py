"""Request plumbing shared by the provider adapters.

Both adapters go through ProviderHttp so that transport failures, missing
paths and unreadable bodies surface as the same exception types whichever
provider produced them.
"""

import base64
import binascii
import hashlib
import json
import logging
from typing import Any

import httpx

from gittasks import __version__
from gittasks.errors import NotFoundError, ProtocolError, TransportError, snippet

logger = logging.getLogger(__name__)

USER_AGENT = f"gittasks/{__version__}"


def encode_content(content: str) -> str:
    """Base64-encode UTF-8 text for the provider file APIs."""
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def git_blob_sha(content: str) -> str:
    """Compute the git blob id of a text, as providers report it."""
    data = content.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class ProviderHttp:
    """Sends requests for one adapter and normalizes the failures."""

    def __init__(self, provider_name: str, client: httpx.AsyncClient | None = None):
        """
        Args:
            provider_name: Human-readable provider name used in messages
            client: Shared client; when None a short-lived one is opened per
                request
        """
        self.provider_name = provider_name
        self._client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request; network failures become TransportError."""
        headers = {"User-Agent": USER_AGENT, **headers}
        logger.debug("%s API request: %s %s", self.provider_name, method, url)

        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, params=params, json=json_body
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, url, headers=headers, params=params, json=json_body
                    )
        except httpx.TimeoutException as e:
            raise TransportError(f"{self.provider_name} request timed out: {url}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{self.provider_name} request failed: {e}") from e

        logger.debug("%s API response status: %d", self.provider_name, response.status_code)
        return response

    def raise_for_status(self, response: httpx.Response, path: str) -> None:
        """Map 404 to NotFoundError and any other non-2xx to TransportError."""
        if response.is_success:
            return

        if response.status_code == 404:
            raise NotFoundError(path, f"{self.provider_name}: not found: {path}")

        retry_after = response.headers.get("Retry-After")
        if retry_after is None and response.headers.get("X-RateLimit-Remaining") == "0":
            retry_after = response.headers.get("X-RateLimit-Reset")

        body = snippet(response.text)
        logger.warning(
            "%s API error %d for %s: %s",
            self.provider_name,
            response.status_code,
            path,
            body,
        )
        message = f"{self.provider_name} API error: {response.status_code} {response.reason_phrase}"
        if body:
            message = f"{message} - {body}"
        raise TransportError(
            message,
            status_code=response.status_code,
            retry_after=retry_after,
        )

    def json(self, response: httpx.Response) -> Any:
        """Decode a JSON body or raise ProtocolError carrying the raw text."""
        text = response.text
        try:
            return json.loads(text)
        except ValueError as e:
            logger.error(
                "%s returned a non-JSON body (first %d chars): %s",
                self.provider_name,
                len(snippet(text)),
                snippet(text),
            )
            raise ProtocolError(
                f"Failed to parse {self.provider_name} response as JSON", raw_body=text
            ) from e

    def decode_content(self, encoded: Any, raw_body: str) -> str:
        """Decode a base64 file body into text."""
        if not isinstance(encoded, str):
            raise ProtocolError(
                f"{self.provider_name} file response has no content", raw_body=raw_body
            )
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ProtocolError(
                f"{self.provider_name} file content is not base64 UTF-8 text",
                raw_body=raw_body,
            ) from e
