"""Request factory - Turns a Request into a sent TransportConnection.

The factory composes the target URI, decides where query parameters go,
configures headers, and streams the request body. The connection it returns
is open with its response unread; the caller reads and closes it.
"""

from __future__ import annotations

from typing import BinaryIO, Iterator

import httpx

from request_factory.connection import StreamWriteError, TransportConnection
from request_factory.http_utils import (
    InvalidUriError,
    append_uri,
    encode_parameters,
    host_header,
)
from request_factory.models import ClientConfig, ExecutionContext, HttpMethodName, Request

DEFAULT_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"

# Size of each chunk copied from the request content to the wire
BUFFER_SIZE = 8 * 1024

SUPPORTED_SCHEMES = ("http", "https")


def put_params_in_uri(request: Request) -> bool:
    """Whether encoded parameters belong in the URI query string.

    Non-POST requests always use the URI. A POST uses the URI only when it
    has no content; a POST with content carries its parameters in the body,
    which the caller has already written into the content stream.
    """
    is_post = request.http_method == HttpMethodName.POST
    has_no_content = request.content is None
    return not is_post or has_no_content


def iter_content(stream: BinaryIO, chunk_size: int = BUFFER_SIZE) -> Iterator[bytes]:
    """Yield the stream's bytes in chunks of at most chunk_size until EOF.

    Raises:
        StreamWriteError: If reading from the stream fails, including a
            closed stream, or if the stream yields text instead of bytes.
    """
    while True:
        try:
            chunk = stream.read(chunk_size)
        except (OSError, ValueError) as e:
            # ValueError is what io raises for a read on a closed stream
            raise StreamWriteError(f"Failed reading request content: {e}") from e
        if not chunk:
            return
        if not isinstance(chunk, (bytes, bytearray, memoryview)):
            raise StreamWriteError(
                f"Request content must be a binary stream, read() returned {type(chunk).__name__}"
            )
        yield bytes(chunk)


def create_user_agent_string(config: ClientConfig, context_user_agent: str) -> str:
    """Append context_user_agent to the configured user agent unless already present."""
    if context_user_agent in config.user_agent:
        return config.user_agent
    return f"{config.user_agent} {context_user_agent}"


def configure_headers(
    connection: TransportConnection,
    request: Request,
    context: ExecutionContext | None,
    config: ClientConfig,
) -> None:
    """Overlay the request's headers onto the connection.

    Order matters: request headers are copied first, then Host is forced
    from the endpoint, then Content-Type is defaulted if absent or empty,
    then User-Agent is overridden when the context supplies a token.
    """
    headers = connection.headers

    for name, value in request.headers.items():
        headers[name] = value

    headers["Host"] = host_header(request.endpoint)

    if not headers.get("Content-Type"):
        headers["Content-Type"] = DEFAULT_CONTENT_TYPE

    if context is not None and context.context_user_agent is not None:
        headers["User-Agent"] = create_user_agent_string(config, context.context_user_agent)


class RequestFactory:
    """Builds and sends HTTP requests described by Request objects.

    Holds no per-request state, so one instance can serve many threads.

    Usage:
        factory = RequestFactory()
        with factory.create_http_request(request, config) as connection:
            status = connection.response.status_code
            body = connection.response.read()
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize the factory.

        Args:
            transport: Optional httpx transport used by every connection
                       instead of the network (e.g. httpx.MockTransport).
        """
        self._transport = transport

    def compose_uri(self, request: Request) -> str:
        """Endpoint + resource path, plus the query string when it belongs there.

        Double slashes inside the resource path are escaped as "/%2F" because
        "http://host//path" is ambiguous to HTTP clients.
        """
        uri = append_uri(request.endpoint, request.resource_path, escape_double_slash=True)
        encoded_params = encode_parameters(request)
        if encoded_params is not None and put_params_in_uri(request):
            uri += "?" + encoded_params
        return uri

    def create_http_request(
        self,
        request: Request,
        config: ClientConfig,
        context: ExecutionContext | None = None,
        redirect: str | None = None,
    ) -> TransportConnection:
        """Open a connection for request, configure it, and send the body.

        Args:
            request: The request to send.
            config: Shared client configuration.
            context: Optional per-call execution context.
            redirect: Optional target URI used verbatim instead of the
                      endpoint and resource path.

        Returns:
            The open connection with the request sent. The caller must
            close it.

        Raises:
            InvalidUriError: If the target URI cannot be built or is not
                http/https.
            ConnectionOpenError: If the connection cannot be opened.
            StreamWriteError: If the body cannot be read or written.
        """
        uri = self.compose_uri(request)
        target = redirect if redirect is not None else uri

        try:
            url = httpx.URL(target)
        except httpx.InvalidURL as e:
            raise InvalidUriError(f"Invalid request URI {target!r}: {e}") from e
        if not url.scheme or not url.host:
            raise InvalidUriError(f"Request URI must be absolute: {target!r}")
        if url.scheme not in SUPPORTED_SCHEMES:
            raise InvalidUriError(f"Unsupported URI scheme {url.scheme!r}: {target!r}")

        connection = TransportConnection(url, config, transport=self._transport)
        try:
            connection.method = request.http_method.value
            configure_headers(connection, request, context, config)

            content = iter_content(request.content) if request.content is not None else None
            connection.send(content)
        except Exception:
            # The caller never receives a half-sent connection
            connection.close()
            raise

        return connection
