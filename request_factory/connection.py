"""Transport connection - one HTTP exchange over its own httpx client.

A TransportConnection is configured (method, headers), sent exactly once
with an optional streamed body, and then handed to the caller for reading
the response. The caller owns it and must close it.
"""

from __future__ import annotations

from typing import Any, Iterable

import httpx

from request_factory.log import get_logger
from request_factory.models import ClientConfig

logger = get_logger("connection")


class RequestIOError(OSError):
    """Base class for I/O failures while sending a request."""


class ConnectionOpenError(RequestIOError):
    """Raised when the connection cannot be opened (connect error, timeout, etc.)."""


class StreamWriteError(RequestIOError):
    """Raised when reading the request body or writing it to the wire fails."""


def _build_client_kwargs(
    config: ClientConfig,
    transport: httpx.BaseTransport | None,
) -> dict[str, Any]:
    """Build kwargs for httpx.Client from the client configuration.

    Args:
        config: Shared client configuration.
        transport: Optional transport replacing the network transport.

    Returns:
        Dictionary of kwargs for httpx.Client constructor.
    """
    kwargs: dict[str, Any] = {
        "headers": {"User-Agent": config.user_agent},
        "timeout": httpx.Timeout(config.socket_timeout, connect=config.connection_timeout),
        "verify": config.verify_ssl,
        # Redirects are resolved by the caller and passed back in as a target
        "follow_redirects": False,
    }

    if transport is not None:
        kwargs["transport"] = transport
    elif config.proxy_url is not None:
        auth = None
        if config.proxy_username:
            auth = (config.proxy_username, config.proxy_password or "")
        kwargs["proxy"] = httpx.Proxy(config.proxy_url, auth=auth)

    return kwargs


class TransportConnection:
    """A single HTTP exchange against one target URL.

    Usage:
        with TransportConnection(url, config) as connection:
            connection.method = "PUT"
            connection.headers["Content-Type"] = "text/plain"
            response = connection.send([b"hello"])
            body = response.read()
    """

    def __init__(
        self,
        url: httpx.URL,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Open a connection to url.

        Raises:
            ConnectionOpenError: If the client cannot be created from config.
        """
        self.url = url
        self.method = "GET"
        self.headers = httpx.Headers()
        self._response: httpx.Response | None = None
        self._closed = False

        try:
            self._client = httpx.Client(**_build_client_kwargs(config, transport))
        except (ValueError, httpx.InvalidURL) as e:
            raise ConnectionOpenError(f"Cannot open connection to {url}: {e}") from e

    def __enter__(self) -> "TransportConnection":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def response(self) -> httpx.Response:
        """The response received by send(). Its body has not been read yet."""
        if self._response is None:
            raise RuntimeError("Request has not been sent on this connection")
        return self._response

    @property
    def is_closed(self) -> bool:
        return self._closed

    def send(self, content: Iterable[bytes] | None = None) -> httpx.Response:
        """Send the request, streaming content as the body.

        Args:
            content: Body chunks, or None to send no body.

        Returns:
            The response, with status and headers received and the body
            left on the wire for the caller.

        Raises:
            RuntimeError: If the connection was already used or closed.
            StreamWriteError: If reading content or writing the body fails.
            ConnectionOpenError: For connect errors, timeouts and other
                transport failures.
        """
        if self._closed:
            raise RuntimeError("Connection is closed")
        if self._response is not None:
            raise RuntimeError("Request already sent on this connection")

        request = self._client.build_request(
            self.method,
            self.url,
            headers=self.headers,
            content=content,
        )
        logger.debug("%s %s", self.method, self.url)

        try:
            self._response = self._client.send(request, stream=True)
        except StreamWriteError:
            raise
        except (httpx.WriteError, httpx.WriteTimeout) as e:
            raise StreamWriteError(f"Failed writing request body to {self.url}: {e}") from e
        except httpx.TimeoutException as e:
            raise ConnectionOpenError(f"Request to {self.url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionOpenError(f"Connection to {self.url} failed: {e}") from e

        return self._response

    def close(self) -> None:
        """Close the response and the underlying client. Safe to call twice.

        Uses try/finally so the client is closed even if closing the
        response raises.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self._response is not None:
                self._response.close()
        finally:
            self._client.close()
