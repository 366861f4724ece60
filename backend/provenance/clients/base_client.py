"""Reusable base for the external HTTP APIs (attestation network, ledger)."""

import logging
from typing import Any, Optional, Type

import httpx

from provenance.errors import AttestationSubmissionFailed, AttestationTransient
from provenance.utils.retry import with_retry

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = 429


class BaseHTTPClient:
    """Thin wrapper around httpx with bearer auth, bounded timeout and retry.

    Every call has a fixed per-request timeout and at most
    ``retry_max_attempts`` tries. Failures surface as one of two typed errors
    so the caller can tell "try again later" from "this will never work":

    - ``transient_error``: timeouts, connection errors, 429 and 5xx
    - ``permanent_error``: other 4xx, or a body that is not JSON

    Subclasses only implement domain methods.
    """

    transient_error: Type[Exception] = AttestationTransient
    permanent_error: Type[Exception] = AttestationSubmissionFailed

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        retry_max_attempts: int = 3,
        retry_initial_delay: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(timeout=timeout, headers=headers, transport=transport)
        self._retry_max_attempts = retry_max_attempts
        self._retry_initial_delay = retry_initial_delay

    # ── HTTP helpers ─────────────────────────────────────────────────

    def _get(self, endpoint: str, timeout: Optional[float] = None) -> Any:
        return self._request("GET", endpoint, timeout=timeout)

    def _post(self, endpoint: str, payload: Any, timeout: Optional[float] = None) -> Any:
        return self._request("POST", endpoint, payload=payload, timeout=timeout)

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Retries on:
        - 5xx server errors
        - 429 rate limit
        - Network errors
        - Timeouts

        Does NOT retry on other 4xx client errors.
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        @with_retry(
            max_attempts=self._retry_max_attempts,
            initial_delay=self._retry_initial_delay,
            retry_on=(httpx.HTTPStatusError, httpx.TransportError),
        )
        def _send():
            logger.debug("%s %s", method, url)
            kwargs = {"json": payload} if payload is not None else {}
            if timeout is not None:
                kwargs["timeout"] = timeout
            resp = self._client.request(method, url, **kwargs)
            if resp.status_code >= 500 or resp.status_code == _TRANSIENT_STATUS:
                logger.warning("Retryable error %d from %s", resp.status_code, url)
                resp.raise_for_status()  # Triggers retry
            return resp

        try:
            resp = _send()
        except httpx.HTTPStatusError as exc:
            raise self.transient_error(
                f"{method} {url} failed with {exc.response.status_code}"
            ) from exc
        except httpx.TransportError as exc:
            raise self.transient_error(f"{method} {url} failed: {exc!r}") from exc

        if resp.status_code >= 400:
            logger.warning("Client error %d for %s - not retrying", resp.status_code, url)
            raise self.permanent_error(f"{method} {url} rejected with {resp.status_code}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as exc:
            raise self.permanent_error(f"{method} {url} returned a non-JSON body") from exc

    # ── lifecycle ────────────────────────────────────────────────────

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
