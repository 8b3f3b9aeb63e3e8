"""ECP forwarder.

Sends validated key commands to the Roku as bare HTTP POSTs under a
strict deadline. One attempt per command; nothing is queued or retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from rokurelay.domain.models import Command
from rokurelay.relay.target import TargetAddress

logger = logging.getLogger(__name__)

ECP_PORT = 8060
DEFAULT_TIMEOUT = 0.5


class ForwardError(Exception):
    """Raised when a command could not be delivered to the device."""

    def __init__(self, message: str, target: str = "") -> None:
        super().__init__(message)
        self.target = target


@dataclass(frozen=True)
class ForwardResult:
    """Outcome of a completed attempt; any status code counts."""

    status_code: int
    latency_ms: float


class EcpForwarder:
    """Issues ``POST http://{target}:{port}/{action}/{key}`` requests."""

    def __init__(
        self,
        target: TargetAddress,
        port: int = ECP_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._target = target
        self._port = port
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def timeout(self) -> float:
        return self._timeout

    def url_for(self, host: str, command: Command) -> str:
        return f"http://{host}:{self._port}{command.path}"

    async def open(self) -> httpx.AsyncClient:
        """Create the pooled HTTP client if it does not exist yet."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, command: Command) -> ForwardResult:
        """Forward one command and wait at most ``timeout`` seconds.

        Raises:
            ForwardError: No target is configured, the deadline passed,
                or the request failed at the transport level.
        """
        host = self._target.get()
        if not host:
            logger.error("Forward requested but no Roku IP is configured")
            raise ForwardError("No Roku IP configured")

        client = await self.open()
        url = self.url_for(host, command)
        logger.debug("Forwarding to Roku: POST %s", url)

        start = time.perf_counter()
        try:
            # wait_for bounds the whole exchange; httpx's own timeout is per phase
            response = await asyncio.wait_for(
                client.post(url, content=b""), timeout=self._timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error("Roku request timed out for %s", url)
            raise ForwardError("Roku request timed out", target=host) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Roku HTTP error for %s: %s", url, message)
            raise ForwardError(message, target=host) from exc

        latency_ms = (time.perf_counter() - start) * 1000
        if response.status_code not in (200, 202):
            logger.warning(
                "Roku responded with HTTP %d for %s",
                response.status_code,
                command.path,
            )
        logger.info("%s -> Roku (%.0fms)", command.path, latency_ms)
        return ForwardResult(status_code=response.status_code, latency_ms=latency_ms)
