"""Straight-line distance and map-link helpers."""
from __future__ import annotations

import math
import re
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

Coordinate = Tuple[float, float]

_Q_PARAM = re.compile(r"[?&](?:q|query|ll)=(-?\d+(?:\.\d+)?)(?:,|%2c)\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)
_AT_PATH = re.compile(r"@(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)")
_LINK = re.compile(r"https?://\S+", re.IGNORECASE)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    if lat is None or lng is None:
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def parse_maps_link(text: str) -> Optional[Coordinate]:
    """Extract ``(lat, lng)`` from a Google Maps link (``?q=lat,lng`` or ``@lat,lng``)."""
    lower = (text or "").lower()
    if "google.com/maps" not in lower and "maps.google." not in lower:
        return None
    for pattern in (_Q_PARAM, _AT_PATH):
        match = pattern.search(lower)
        if match:
            lat, lng = float(match.group(1)), float(match.group(2))
            if is_valid_coordinate(lat, lng):
                return lat, lng
    return None


def is_link_only(text: str) -> bool:
    """True when the message is nothing but one or more links."""
    return bool(_LINK.search(text or "")) and not _LINK.sub("", text).strip()


def maps_link(lat: float, lng: float) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={lat},{lng}"
