import re
from typing import Optional

ZONE_KEYS = ("zoneA", "zoneB", "zoneC", "zoneD", "zoneE")
ALL_ZONES = "all"

_ZONE_LETTER = re.compile(r"^(?:zone_?|route_|lane_)?([a-e])$")
_SUFFIXED_ZONE = re.compile(r"(?:^|_)zone_?([a-e])$")


def normalize_zone_key(zone: Optional[str]) -> Optional[str]:
    """
    Map the zone spellings found in rate sheets to the canonical key.

    "A", "zone_a", "zoneA", "route_a", "lane_a", "metro_zonea" -> "zoneA".
    "all" is kept as a wildcard. Anything else returns None.
    """
    raw = str(zone or "").strip().lower()
    if not raw:
        return None
    if raw == ALL_ZONES:
        return ALL_ZONES

    match = _ZONE_LETTER.match(raw) or _SUFFIXED_ZONE.search(raw)
    if not match:
        return None
    return f"zone{match.group(1).upper()}"
