"""Target domain validation and host/port handling."""

import logging
from typing import Tuple
from urllib.parse import urlsplit

from .errors import InvalidInputError

LOG = logging.getLogger("PreconfigTester.Domains")

DEFAULT_PORT = 443
MAX_DOMAIN_LENGTH = 253

PRESET_DOMAINS = (
    "discord.com",
    "youtube.com",
    "spotify.com",
    "speedtest.net",
    "steampowered.com",
)

_ALLOWED = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-")


def is_valid_domain(domain: str) -> bool:
    """Checks a bare host name (no port, no scheme)."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    if ":" in domain or not set(domain) <= _ALLOWED:
        return False
    if domain[0] in "-." or domain[-1] in "-.":
        return False
    return all(label for label in domain.split("."))


def format_domain_with_port(domain: str, port: int = DEFAULT_PORT) -> str:
    return f"{domain.strip()}:{port}"


def split_host_port(target: str) -> Tuple[str, int]:
    """
    Splits ``host[:port]`` into its parts.

    Raises:
        InvalidInputError: if the host is malformed or the port is out of range.
    """
    if not isinstance(target, str):
        raise InvalidInputError(f"Target must be a string, got {type(target).__name__}")

    host, sep, port_str = target.strip().partition(":")
    port = DEFAULT_PORT
    if sep:
        if not port_str.isdigit():
            raise InvalidInputError(f"Invalid port in target '{target}'", {"target": target})
        port = int(port_str)
        if not 1 <= port <= 65535:
            raise InvalidInputError(f"Port out of range in target '{target}'", {"target": target})

    if not is_valid_domain(host):
        raise InvalidInputError(
            f"Invalid domain format: '{host}'. Use format domain.com", {"target": target}
        )
    return host.lower(), port


def normalize_target(raw: str, default_port: int = DEFAULT_PORT) -> str:
    """
    Turns user input such as ``https://Discord.com/app`` into ``discord.com:443``.
    """
    value = (raw or "").strip()
    if "://" in value:
        value = urlsplit(value).netloc
    else:
        value = value.split("/", 1)[0]
    if not value:
        raise InvalidInputError("Empty target domain")

    if ":" not in value:
        value = format_domain_with_port(value, default_port)
    host, port = split_host_port(value)
    normalized = f"{host}:{port}"
    if normalized != raw:
        LOG.debug(f"Normalized target '{raw}' -> '{normalized}'")
    return normalized


def registrable_domain(host: str) -> str:
    """
    Naive eTLD+1: the last two labels of the host.

    Good enough to tell ``www.youtube.com`` from ``warning.rt.ru``; multi-part
    public suffixes such as ``co.uk`` compare by their last two labels.
    """
    host = host.split(":", 1)[0].strip(".").lower()
    labels = host.split(".")
    return ".".join(labels[-2:]) if len(labels) >= 2 else host
