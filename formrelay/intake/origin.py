"""Allowed-origin enforcement for cross-site form posts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Set
from urllib.parse import urlsplit

logger = logging.getLogger("formrelay.intake.origin")

# Always trusted so tenants can test forms from a dev server.
DEV_HOSTNAMES = frozenset({"localhost", "127.0.0.1"})


@dataclass(frozen=True)
class OriginDecision:
    trusted: bool
    hostname: Optional[str] = None
    reason: Optional[str] = None


def extract_hostname(origin: Optional[str]) -> Optional[str]:
    """Return the lowercased hostname of an origin URL, or None if it has none."""
    if not origin or not origin.strip():
        return None
    try:
        return urlsplit(origin.strip()).hostname
    except ValueError:
        return None


def normalize_allowed_origin(entry: str) -> str:
    """
    Reduce a configured allow-list entry to a bare hostname.

    "https://Example.com/contact" -> "example.com", " example.com " -> "example.com"
    """
    entry = entry.strip()
    if entry.startswith(("http://", "https://")):
        try:
            hostname = urlsplit(entry).hostname
        except ValueError:
            hostname = None
        if hostname:
            return hostname
    return entry.lower()


def allowed_hostnames(allowed_origins: Iterable[str]) -> Set[str]:
    return {
        normalize_allowed_origin(entry)
        for entry in allowed_origins
        if entry and entry.strip()
    }


def check_origin(origin: Optional[str], allowed_origins: Iterable[str]) -> OriginDecision:
    """
    Decide whether a submission's declared origin may post to a project.

    An empty allow-list means the project has no restriction configured.
    """
    allowed = allowed_hostnames(allowed_origins or [])
    hostname = extract_hostname(origin)

    if not allowed:
        return OriginDecision(trusted=True, hostname=hostname)

    if hostname is not None and hostname in allowed:
        return OriginDecision(trusted=True, hostname=hostname)

    if hostname in DEV_HOSTNAMES:
        logger.debug("Trusting development origin %s", hostname)
        return OriginDecision(trusted=True, hostname=hostname)

    return OriginDecision(
        trusted=False,
        hostname=hostname,
        reason=f"Origin not allowed: {hostname or 'unknown'}",
    )
