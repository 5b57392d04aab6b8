"""SSRF policy for outbound fetches.

`UrlGuard.validate` is a pure check on the URL text; no DNS lookup or
network call is made. It must run before every request, including every
redirect hop the collector follows.
"""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit, urlunsplit

from signalpress.errors import ValidationError

ALLOWED_SCHEME = "https"
ALLOWED_PORTS = frozenset({80, 443})

_BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"})
_BLOCKED_SUFFIXES = (".localhost", ".local", ".internal")

# 2130706433, 0x7f000001, 127.1 and friends resolve to IPs via inet_aton
_NUMERIC_LABEL = re.compile(r"^(0x[0-9a-f]*|[0-9]+)$", re.IGNORECASE)


def _is_forbidden_ip(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_loopback
        or ip.is_unspecified
        or ip.is_private
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
    )


class UrlGuard:
    """Validate candidate URLs against the SSRF policy."""

    def validate(self, raw_url: str) -> str:
        """Return the normalized URL or raise ValidationError."""
        if not raw_url or not isinstance(raw_url, str):
            raise ValidationError("URL is required")

        try:
            parts = urlsplit(raw_url.strip())
            port = parts.port
        except ValueError as e:
            raise ValidationError(f"Malformed URL: {e}") from e

        if parts.scheme != ALLOWED_SCHEME:
            raise ValidationError("Only https URLs are allowed")
        if parts.username or parts.password:
            raise ValidationError("URLs with credentials are not allowed")

        host = (parts.hostname or "").rstrip(".")
        if not host:
            raise ValidationError("URL has no hostname")
        if port is not None and port not in ALLOWED_PORTS:
            raise ValidationError(f"Port {port} is not allowed")

        self._check_host(host)

        netloc = host if ":" not in host else f"[{host}]"
        if port is not None:
            netloc = f"{netloc}:{port}"
        return urlunsplit((parts.scheme, netloc, parts.path or "/", parts.query, ""))

    def is_allowed(self, raw_url: str) -> bool:
        try:
            self.validate(raw_url)
        except ValidationError:
            return False
        return True

    @staticmethod
    def _check_host(host: str) -> None:
        if host in _BLOCKED_HOSTNAMES or host.endswith(_BLOCKED_SUFFIXES):
            raise ValidationError(f"Host {host} is not allowed")

        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            ip = None

        if ip is not None:
            if _is_forbidden_ip(ip):
                raise ValidationError(f"Address {host} is in a private or reserved range")
            return

        if all(_NUMERIC_LABEL.match(label) for label in host.split(".")):
            raise ValidationError(f"Numeric host {host} is not allowed")
