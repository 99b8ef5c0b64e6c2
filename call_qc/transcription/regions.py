"""Provider regions: endpoints, fallback order and timezone-based detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class RegionConfig:
    region: str
    name: str
    description: str
    endpoints: dict[str, str]


REGIONS: Final[dict[str, RegionConfig]] = {
    "us": RegionConfig(
        region="us",
        name="United States",
        description="US-based servers for North American users",
        endpoints={
            "assemblyai": "https://api.assemblyai.com/v2/",
            "deepgram": "https://api.deepgram.com/v1/",
        },
    ),
    "eu": RegionConfig(
        region="eu",
        name="European Union",
        description="EU-based servers for European users (GDPR compliant)",
        endpoints={
            "assemblyai": "https://api.eu.assemblyai.com/v2/",
            "deepgram": "https://api.eu.deepgram.com/v1/",
        },
    ),
}

_EU_TIMEZONE_PREFIXES: Final = ("Europe/", "Africa/")
_EU_TIMEZONES: Final = frozenset({"Asia/Istanbul", "Asia/Dubai"})


def endpoint_for(region: str, vendor: str) -> str:
    try:
        return REGIONS[region].endpoints[vendor]
    except KeyError:
        message = f"No {vendor} endpoint for region '{region}'"
        raise ValueError(message) from None


def other_region(region: str, regions: tuple[str, ...] = ("us", "eu")) -> str | None:
    """Return the fallback region for ``region``, or None if there is none."""
    for candidate in regions:
        if candidate != region:
            return candidate
    return None


def detect_region(timezone_name: str | None) -> str:
    """Pick the closest region from an IANA timezone name (defaults to us)."""
    tz = (timezone_name or "").strip()
    if tz.startswith(_EU_TIMEZONE_PREFIXES) or tz in _EU_TIMEZONES:
        return "eu"
    return "us"
