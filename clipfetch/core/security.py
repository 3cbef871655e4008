import ipaddress
import re
from typing import Optional
from urllib.parse import urlsplit

from clipfetch.config.settings import config
from clipfetch.core.errors import ValidationError

MAX_URL_LENGTH = 2048
MAX_HOSTNAME_LENGTH = 253

ALLOWED_SCHEMES = ("http", "https")
BLOCKED_HOSTNAMES = ("localhost",)
BLOCKED_HOST_PREFIXES = ("127.", "192.168.")

# ; & | ` $ ( ) { } [ ] < >
SHELL_METACHARACTERS = re.compile(r"[;&|`$(){}\[\]<>]")


def sanitize_url(raw: str) -> str:
    """Strip shell metacharacters and surrounding whitespace"""
    return SHELL_METACHARACTERS.sub("", raw.strip())


def is_within_length(url: str) -> bool:
    return len(url) <= MAX_URL_LENGTH


def _is_blocked_ip_literal(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False

    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def validate_url(url: str) -> bool:
    """
    Structural and public-host checks on an already sanitized URL.
    Never raises; any parse failure is simply invalid.
    """
    if not is_within_length(url):
        return False

    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
    except ValueError:
        return False

    if parsed.scheme not in ALLOWED_SCHEMES:
        return False

    if not hostname or len(hostname) > MAX_HOSTNAME_LENGTH:
        return False

    if hostname in BLOCKED_HOSTNAMES or hostname.startswith(BLOCKED_HOST_PREFIXES):
        return False

    if config.security.block_private_ips and _is_blocked_ip_literal(hostname):
        return False

    return True


def prepare_url(raw: Optional[str]) -> str:
    """
    Turn an untrusted URL into a sanitized one, or raise ValidationError.
    The only place that reads the raw request URL.
    """
    if not raw or not isinstance(raw, str):
        raise ValidationError("error.url_required")

    sanitized = sanitize_url(raw)
    if not sanitized:
        raise ValidationError("error.url_required")

    if not is_within_length(sanitized):
        raise ValidationError("error.url_too_long")

    if not validate_url(sanitized):
        raise ValidationError("error.invalid_url")

    return sanitized
