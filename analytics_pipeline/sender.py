"""HTTP sender — posts serialized batches to the ingestion endpoint."""

import base64
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from analytics_pipeline.errors import SendError
from analytics_pipeline.serializer import LIBRARY_NAME, LIBRARY_VERSION

logger = logging.getLogger(__name__)

IMPORT_PATH = "/v1/import"


@dataclass(frozen=True)
class SendResult:
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Sender(Protocol):
    def send(self, payload: bytes) -> SendResult:
        ...


def basic_credentials(username: str, password: str = "") -> str:
    """Build an HTTP Basic Authorization header value."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class HttpSender:
    """Sends batch payloads over HTTP(S) using a shared httpx client."""

    def __init__(
        self,
        write_key: str,
        endpoint: str,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ):
        self._url = endpoint.rstrip("/") + IMPORT_PATH
        self._headers = {
            "Authorization": basic_credentials(write_key),
            "Content-Type": "application/json",
            "User-Agent": f"{LIBRARY_NAME}/{LIBRARY_VERSION}",
        }
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def url(self) -> str:
        return self._url

    def send(self, payload: bytes) -> SendResult:
        """POST *payload*. Raises SendError on transport failure; HTTP error
        statuses are returned, not raised."""
        try:
            response = self._client.post(self._url, content=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise SendError(f"POST {self._url} failed: {exc}") from exc
        logger.debug("POST %s -> %d (%d bytes)", self._url, response.status_code, len(payload))
        return SendResult(status_code=response.status_code, body=response.text)

    def close(self):
        self._client.close()
