from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

if TYPE_CHECKING:
    from starlette.requests import Request

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "[::1]")


def construct_redirect_uri(redirect_uri_base: str, **params: str | None) -> str:
    parsed_uri = urlparse(redirect_uri_base)
    updates = {key: value for key, value in params.items() if value is not None}
    # Parameters we set replace any the base URI already carries.
    query_params = [
        (key, value) for key, value in parse_qsl(parsed_uri.query, keep_blank_values=True) if key not in updates
    ]
    query_params.extend(updates.items())
    return urlunparse(parsed_uri._replace(query=urlencode(query_params)))


def join_url(base_url: str, path: str) -> str:
    parsed = urlparse(base_url)
    base_path = parsed.path.rstrip("/")
    append_path = path.lstrip("/")
    joined_path = f"{base_path}/{append_path}" if append_path else base_path
    return urlunparse(parsed._replace(path=joined_path))


def resolve_base_url(request: Request) -> str:
    """Return the externally visible ``scheme://host`` for ``request``.

    Forwarded headers win over the socket view. Without ``X-Forwarded-Proto``
    only loopback hosts are assumed to be plain http.
    """
    headers = request.headers
    host = _first_value(headers.get("x-forwarded-host")) or headers.get("host") or request.url.netloc
    scheme = _first_value(headers.get("x-forwarded-proto"))
    if not scheme:
        hostname = host.rsplit(":", 1)[0] if not host.endswith("]") else host
        scheme = "http" if hostname in _LOCAL_HOSTS else "https"
    return f"{scheme.lower()}://{host}"


def is_absolute_uri(value: str) -> bool:
    parsed = urlparse(value)
    if not parsed.scheme or parsed.fragment:
        return False
    return bool(parsed.netloc or parsed.path)


def _first_value(header: str | None) -> str | None:
    if not header:
        return None
    first = header.split(",")[0].strip()
    return first or None
