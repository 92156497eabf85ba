"""requestkit: a configurable HTTP client with bounded retries."""

from .cancellation import CancellationToken
from .client import AsyncClient, Client, aread_body, read_body
from .config import (
    ClientConfig,
    ClientOption,
    TLSMaterial,
    TransportSettings,
    build_config,
    options_from_env,
    with_base_url,
    with_default_headers,
    with_retry,
    with_timeout,
    with_tls_config,
    with_transport,
)
from .exceptions import (
    CancellationError,
    ConfigurationError,
    RequestKitError,
    RequestOptionError,
    TransportError,
)
from .request_options import (
    PreparedRequest,
    RequestOption,
    with_basic_auth,
    with_cancellation,
    with_header,
    with_query_param,
)

__all__ = [
    "AsyncClient",
    "CancellationError",
    "CancellationToken",
    "Client",
    "ClientConfig",
    "ClientOption",
    "ConfigurationError",
    "PreparedRequest",
    "RequestKitError",
    "RequestOption",
    "RequestOptionError",
    "TLSMaterial",
    "TransportError",
    "TransportSettings",
    "aread_body",
    "build_config",
    "options_from_env",
    "read_body",
    "with_base_url",
    "with_basic_auth",
    "with_cancellation",
    "with_default_headers",
    "with_header",
    "with_query_param",
    "with_retry",
    "with_timeout",
    "with_tls_config",
    "with_transport",
]
