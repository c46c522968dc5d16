"""URL and request validation utilities."""

import ipaddress
import re
from collections.abc import Sequence
from urllib.parse import urlparse

from app.errors.exceptions import ValidationError

_LABEL = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)


def _valid_hostname(hostname: str) -> bool:
    """
    True for IP literals (v4 and v6) and for DNS names, single-label intranet
    hosts and internationalized names included.
    """
    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        pass

    # Dotted digits that are not a valid IPv4 address
    if re.fullmatch(r"[\d.]+", hostname):
        return False

    try:
        ascii_name = hostname.encode("idna").decode("ascii")
    except UnicodeError:
        return False
    labels = ascii_name.rstrip(".").split(".")
    return len(ascii_name) <= 253 and all(_LABEL.match(label) for label in labels)


def validate_url(url: str) -> str:
    """
    Validate an absolute http(s) URL.
    Returns the stripped URL or raises ValidationError.
    """
    if not url or not isinstance(url, str):
        raise ValidationError("URL is required and must be a non-empty string")

    # Remove leading/trailing whitespace
    url = url.strip()

    if "://" not in url:
        raise ValidationError(f"URL must be absolute (include http:// or https://): {url}")

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ValidationError(f"Invalid URL format: {str(e)}")

    # Validate scheme
    if parsed.scheme not in ("http", "https"):
        raise ValidationError(f"URL must use http or https protocol: {url}")

    # Validate netloc (domain)
    if not parsed.hostname:
        raise ValidationError(f"URL must include a valid domain: {url}")

    if " " in parsed.netloc:
        raise ValidationError(f"URL domain appears to be invalid: {url}")

    # Validate port if present
    try:
        port = parsed.port
    except ValueError:
        raise ValidationError(f"Invalid port in URL: {url}")
    if port is not None and not (1 <= port <= 65535):
        raise ValidationError(f"Port {port} is out of valid range (1-65535)")

    if not _valid_hostname(parsed.hostname):
        raise ValidationError(f"URL domain format appears invalid: {url}")

    return url


def validate_urls(urls: Sequence[str]) -> list[str]:
    """Validate a batch of URLs, keeping their order."""
    if not urls:
        raise ValidationError("urls must contain at least one URL")
    return [validate_url(url) for url in urls]


def validate_blocked_patterns(patterns: Sequence[str]) -> list[str]:
    """Blocked-request patterns must be non-empty strings."""
    cleaned: list[str] = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern.strip():
            raise ValidationError("blockedRequests entries must be non-empty strings")
        cleaned.append(pattern.strip())
    return cleaned
