"""URI and query-string helpers used when building requests.

Path segments are percent-encoded per RFC 3986; query parameters are
form-urlencoded (space becomes "+"), which is what storage services expect
for signed query strings.
"""

from __future__ import annotations

from urllib.parse import SplitResult, quote, quote_plus, urlsplit

from request_factory.models import Request

_DEFAULT_PORTS = {"http": 80, "https": 443}


class InvalidUriError(ValueError):
    """Raised when an endpoint, path or redirect target is not a valid URI."""


def url_encode(value: str, path: bool = False) -> str:
    """Percent-encode a string as UTF-8.

    Unreserved characters (letters, digits, "-", "_", ".", "~") are kept.
    Space becomes "%20" and "*" becomes "%2A".

    Args:
        value: The string to encode.
        path: Keep "/" unescaped so the value can be used as a URL path.

    Returns:
        The encoded string.
    """
    return quote(value, safe="/" if path else "", encoding="utf-8")


def append_uri(base_uri: str, path: str | None, escape_double_slash: bool = False) -> str:
    """Append a resource path to a base URI.

    Exactly one "/" separates base and path. With escape_double_slash, every
    "//" left in the encoded path is rewritten to "/%2F" so HTTP libraries
    cannot read it as a network-path reference.

    Args:
        base_uri: Endpoint URI, e.g. "http://host:8080".
        path: Resource path, e.g. "/bucket/key". None or "" appends nothing.
        escape_double_slash: Escape "//" in the path.

    Returns:
        The combined URI string.
    """
    result = base_uri
    if path:
        if path.startswith("/"):
            if result.endswith("/"):
                result = result[:-1]
        elif not result.endswith("/"):
            result += "/"
        encoded_path = url_encode(path, path=True)
        if escape_double_slash:
            encoded_path = encoded_path.replace("//", "/%2F")
        result += encoded_path
    elif not result.endswith("/"):
        result += "/"
    return result


def _encode_form(value: str) -> str:
    # "*" is left alone, matching application/x-www-form-urlencoded encoders
    return quote_plus(value, safe="*", encoding="utf-8")


def encode_parameters(request: Request) -> str | None:
    """Form-encode a request's parameters in insertion order.

    Returns None when the request has no parameters. A None value is
    written as a bare name, e.g. {"acl": None, "max": "10"} -> "acl&max=10".
    """
    if not request.parameters:
        return None

    pairs: list[str] = []
    for name, value in request.parameters.items():
        if value is None:
            pairs.append(_encode_form(name))
        else:
            pairs.append(f"{_encode_form(name)}={_encode_form(value)}")
    return "&".join(pairs)


def _split_uri(uri: str) -> SplitResult:
    try:
        parts = urlsplit(uri)
    except ValueError as e:
        raise InvalidUriError(f"Invalid URI {uri!r}: {e}") from e
    if not parts.scheme or not parts.hostname:
        raise InvalidUriError(f"URI must have a scheme and host: {uri!r}")
    return parts


def _explicit_port(parts: SplitResult, uri: str) -> int | None:
    try:
        return parts.port
    except ValueError as e:
        raise InvalidUriError(f"Invalid port in URI {uri!r}: {e}") from e


def is_using_non_default_port(uri: str) -> bool:
    """Return True if the URI names a port other than its scheme's default.

    A URI without an explicit port always uses the default.
    """
    parts = _split_uri(uri)
    port = _explicit_port(parts, uri)
    if port is None or port <= 0:
        return False
    return _DEFAULT_PORTS.get(parts.scheme.lower()) != port


def host_header(uri: str) -> str:
    """Value for the Host header of a request sent to this endpoint."""
    parts = _split_uri(uri)
    host = parts.hostname
    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"
    if is_using_non_default_port(uri):
        host += f":{_explicit_port(parts, uri)}"
    return host
