"""URL parsing and normalization."""

import ipaddress
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

ALLOWED_SCHEMES = ("http", "https")

_DEFAULT_PORTS = {"http": 80, "https": 443}

_HOST_LABEL = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?$")


def normalize_url(url: str) -> Optional[str]:
    """Normalize an absolute HTTP(S) URL.

    Lower-cases scheme and host, drops the fragment and default ports,
    maps an empty path to ``/`` and strips a trailing slash from other
    paths.

    Args:
        url: Candidate URL

    Returns:
        The normalized URL, or None if it is not an absolute HTTP(S) URL
        with a valid host
    """
    if not isinstance(url, str):
        return None

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES or not parts.hostname:
        return None

    host = _valid_host(parts.hostname)
    if host is None:
        return None
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    netloc = host
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials += f":{parts.password}"
        netloc = f"{credentials}@{host}"

    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    return urlunsplit((scheme, netloc, path, parts.query, ""))


def host_of(url: str) -> Optional[str]:
    """Lower-cased host name of a URL, without port."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def path_of(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return "/"


def origin_of(url: str) -> Optional[str]:
    """``scheme://netloc`` part of a URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def _valid_host(hostname: str) -> Optional[str]:
    """Lower-cased ASCII form of a host name, or None if it is not one.

    IPv6 literals are checked as addresses; other names are IDNA-encoded
    and every label must be a valid DNS label.
    """
    host = hostname.lower()
    if ":" in host:
        try:
            ipaddress.IPv6Address(host.split("%", 1)[0])
        except ValueError:
            return None
        return host

    try:
        host = host.encode("idna").decode("ascii")
    except UnicodeError:
        return None

    labels = host[:-1].split(".") if host.endswith(".") else host.split(".")
    if len(host) > 253 or not all(_HOST_LABEL.match(label) for label in labels):
        return None
    return host
