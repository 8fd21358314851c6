"""Data models for request-factory.

All models use Pydantic v2. Request and ExecutionContext are owned by the
caller; ClientConfig is long-lived and frozen so it can be shared across
threads.
"""

from __future__ import annotations

import io
import platform
from enum import Enum
from typing import Any, BinaryIO

from pydantic import BaseModel, ConfigDict, Field, field_validator

VERSION = "0.1.0"

DEFAULT_USER_AGENT = (
    f"request-factory/{VERSION} "
    f"Python/{platform.python_version()} "
    f"{platform.system()}/{platform.release()}"
)

# Seconds
DEFAULT_CONNECTION_TIMEOUT = 50.0
DEFAULT_SOCKET_TIMEOUT = 50.0


class HttpMethodName(str, Enum):
    """HTTP methods a Request may carry."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"


# =============================================================================
# Request Models
# =============================================================================


class Request(BaseModel):
    """Transport-agnostic description of one HTTP request.

    headers and parameters keep insertion order; that order is the order in
    which they reach the wire. A parameter whose value is None is encoded as
    a bare name (e.g. "?acl").
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    http_method: HttpMethodName = Field(
        default=HttpMethodName.GET, description="HTTP method"
    )
    endpoint: str = Field(description="Scheme, host and optional port, e.g. http://host:8080")
    resource_path: str | None = Field(
        default=None, description="Path appended after the endpoint, e.g. /bucket/key"
    )
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    parameters: dict[str, str | None] = Field(
        default_factory=dict, description="Query parameters, encoded by encode_parameters"
    )
    content: BinaryIO | None = Field(
        default=None, description="Readable binary stream with the body, or None"
    )

    # Plain mode: io.BytesIO and io.RawIOBase streams are not typing.BinaryIO
    # subclasses, so an isinstance check would reject them
    @field_validator("content", mode="plain")
    @classmethod
    def check_content_readable(cls, v: Any) -> BinaryIO | None:
        if v is None:
            return None
        if isinstance(v, io.TextIOBase) or not callable(getattr(v, "read", None)):
            raise ValueError("content must be a readable binary stream")
        return v


class ExecutionContext(BaseModel):
    """Per-call metadata supplied by the caller."""

    model_config = ConfigDict(extra="forbid")

    context_user_agent: str | None = Field(
        default=None, description="Extra user-agent token appended for this call"
    )


# =============================================================================
# Client Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Static client configuration, shared read-only across calls."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="Base User-Agent string")
    connection_timeout: float = Field(
        default=DEFAULT_CONNECTION_TIMEOUT, gt=0, description="Connect timeout in seconds"
    )
    socket_timeout: float = Field(
        default=DEFAULT_SOCKET_TIMEOUT, gt=0, description="Read/write timeout in seconds"
    )
    proxy_host: str | None = Field(default=None, description="Proxy host")
    proxy_port: int | None = Field(default=None, gt=0, lt=65536, description="Proxy port")
    proxy_username: str | None = Field(default=None, description="Proxy basic-auth user")
    proxy_password: str | None = Field(default=None, description="Proxy basic-auth password")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")

    @property
    def proxy_url(self) -> str | None:
        """Proxy URL built from proxy_host/proxy_port, or None without a host."""
        if not self.proxy_host:
            return None
        if self.proxy_port is None:
            return f"http://{self.proxy_host}"
        return f"http://{self.proxy_host}:{self.proxy_port}"
