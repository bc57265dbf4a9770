"""
Coordinate Text Parsing

Recognises queries that are already coordinates so the geocoder can answer
them without a network round trip:

    "42.3601, -71.0589"
    "42.3601 -71.0589"
    "42°21'36.4\"N 71°3'32.0\"W"
    "42 21 36.4 N, 71 3 32 W"

Pair order is latitude first unless hemisphere letters say otherwise.
"""

import re
from typing import Optional, Tuple

DMS_RE = re.compile(r"""^\s*
    (?P<deg>[-+]?\d+(?:\.\d+)?)
    (?:[°º\s]\s*(?P<min>\d+(?:\.\d+)?))?
    (?:['’′\s]\s*(?P<sec>\d+(?:\.\d+)?))?
    (?:["”″])?
    \s*(?P<hem>[NnSsEeWw])?\s*$
""", re.VERBOSE)

HEM_SIGNS = {
    "N": 1, "n": 1,
    "E": 1, "e": 1,
    "S": -1, "s": -1,
    "W": -1, "w": -1,
}

# One coordinate followed by a hemisphere letter, or a bare token
_HEM_SPLIT_RE = re.compile(r"[^NnSsEeWw]+[NnSsEeWw]")
_DECIMAL_PAIR_RE = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)\s*[,;\s]\s*([-+]?\d+(?:\.\d+)?)\s*$")


def parse_dms(text: str) -> float:
    """Degrees, optional minutes and seconds, optional hemisphere -> decimal degrees."""
    m = DMS_RE.match(text)
    if not m:
        try:
            return float(text.strip())
        except ValueError as e:
            raise ValueError(f"Cannot parse coordinate: {text}") from e

    deg = float(m.group("deg"))
    minutes = m.group("min")
    seconds = m.group("sec")
    hem = m.group("hem")

    val = abs(deg)
    if minutes is not None:
        if float(minutes) >= 60:
            raise ValueError(f"Minutes out of range: {text}")
        val += float(minutes) / 60.0
    if seconds is not None:
        if float(seconds) >= 60:
            raise ValueError(f"Seconds out of range: {text}")
        val += float(seconds) / 3600.0

    # Explicit sign first, hemisphere letter wins
    sign = -1 if text.strip().startswith("-") else 1
    if hem:
        sign = HEM_SIGNS[hem]
    return sign * val


def parse_lat(text: str) -> float:
    v = parse_dms(text)
    if not -90 <= v <= 90:
        raise ValueError("Latitude out of range")
    return v


def parse_lon(text: str) -> float:
    v = parse_dms(text)
    if not -180 <= v <= 180:
        raise ValueError("Longitude out of range")
    return v


def _hemisphere(token: str) -> Optional[str]:
    token = token.strip()
    if token and token[-1].upper() in "NSEW":
        return token[-1].upper()
    return None


def parse_coordinate_pair(text: str) -> Optional[Tuple[float, float]]:
    """
    Parse "lat, lon" style text into (lat, lon).

    Returns None when the text is not a coordinate pair or a value is out of
    range; this is a recogniser, not a validator.
    """
    if not text or not text.strip():
        return None

    m = _DECIMAL_PAIR_RE.match(text)
    if m:
        try:
            return parse_lat(m.group(1)), parse_lon(m.group(2))
        except ValueError:
            return None

    parts = [p.strip(" ,;") for p in _HEM_SPLIT_RE.findall(text)]
    if len(parts) != 2:
        parts = [p.strip() for p in re.split(r"[,;]", text) if p.strip()]
    if len(parts) != 2:
        return None

    first, second = parts
    # "71W 42N" is legal; hemisphere letters decide which is which
    if _hemisphere(first) in ("E", "W") and _hemisphere(second) in ("N", "S"):
        first, second = second, first

    try:
        return parse_lat(first), parse_lon(second)
    except ValueError:
        return None
