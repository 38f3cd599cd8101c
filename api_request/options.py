"""Options Builder - Turns a CallDescriptor into transport-ready options.

Everything here is pure: no I/O, no client state. Resolution rules:

- An endpoint without a scheme gets "http://" prepended.
- A non-empty descriptor path replaces the endpoint's own path.
- {name} placeholders are replaced from path_params. Names missing from
  path_params are replaced with an empty string.
- Non-empty query_params replace the endpoint's own query string. The two are
  never merged.
- Credentials in the endpoint (user:pass@host) become a Basic Authorization
  header unless the headers already carry one.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, Mapping
from urllib.parse import SplitResult, quote, unquote, urlencode, urlsplit

from api_request.errors import ConfigError
from api_request.models import CallDescriptor, ResolvedOptions

logger = logging.getLogger(__name__)

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")


def format_endpoint(endpoint: str) -> str:
    """Prepend http:// when the endpoint carries no scheme."""
    if _SCHEME_PREFIX.match(endpoint):
        return endpoint
    return f"http://{endpoint}"


def render_value(value: Any) -> str:
    """Render a path or query value the way a URL expects to see it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_path(template: str, path_params: Mapping[str, Any] | None = None) -> str:
    """Substitute every {name} placeholder in template.

    Args:
        template: Path with {name} placeholders, e.g. "users/{userId}/contacts".
        path_params: Placeholder name -> value.

    Returns:
        The rendered path. Placeholders without a value become "".
    """
    params = path_params or {}

    def replacer(match: re.Match) -> str:
        name = match.group(1)
        if name not in params:
            logger.debug("No value for path placeholder {%s}, substituting empty string", name)
            return ""
        return render_value(params[name])

    return _PLACEHOLDER.sub(replacer, template)


def build_query(query_params: Mapping[str, Any] | None) -> str:
    """Serialize query parameters as a form query string.

    List and tuple values repeat the key. Spaces encode as %20.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in (query_params or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            pairs.append((key, render_value(item)))
    return urlencode(pairs, quote_via=quote)


def basic_auth_header(url: SplitResult) -> str | None:
    """Authorization value for credentials embedded in url, or None."""
    if url.username is None:
        return None
    credentials = f"{unquote(url.username)}:{unquote(url.password or '')}"
    return "Basic " + base64.b64encode(credentials.encode("utf-8")).decode("ascii")


def resolve_path(
    path: str,
    path_params: Mapping[str, Any] | None,
    query_params: Mapping[str, Any] | None,
    url: SplitResult,
) -> str:
    """Resolve the absolute request path, including the query string.

    Args:
        path: Descriptor path template (may be empty).
        path_params: Placeholder values.
        query_params: Query parameters; when empty the endpoint query is used.
        url: The parsed endpoint.

    Returns:
        "/" + rendered path, plus "?" + query when the query is non-empty.
    """
    endpoint_path = unquote(url.path.removeprefix("/"))
    template = path.removeprefix("/") or endpoint_path
    rendered = parse_path(template, path_params)
    query = build_query(query_params) or url.query
    return f"/{rendered}?{query}" if query else f"/{rendered}"


def resolve_options(
    descriptor: CallDescriptor,
    headers: Mapping[str, str] | None = None,
) -> ResolvedOptions:
    """Build ResolvedOptions for a call.

    Args:
        descriptor: The caller's request intent.
        headers: Already-merged headers. Defaults to descriptor.headers.

    Returns:
        Frozen ResolvedOptions.

    Raises:
        ConfigError: If the endpoint has no host or an invalid port.
    """
    url = urlsplit(format_endpoint(descriptor.endpoint))

    if not url.hostname:
        raise ConfigError(f"Endpoint has no host: {descriptor.endpoint!r}")
    try:
        port = url.port
    except ValueError as e:
        raise ConfigError(f"Invalid port in endpoint {descriptor.endpoint!r}: {e}") from e

    resolved_headers = dict(descriptor.headers if headers is None else headers)
    authorization = basic_auth_header(url)
    if authorization and not any(name.lower() == "authorization" for name in resolved_headers):
        resolved_headers["Authorization"] = authorization

    options = ResolvedOptions(
        protocol=f"{url.scheme.lower()}:",
        host=url.hostname,
        port=port,
        method=descriptor.method,
        path=resolve_path(descriptor.path, descriptor.path_params, descriptor.query_params, url),
        headers=resolved_headers,
    )
    logger.debug("Resolved %s %s", options.method, options.url)
    return options
