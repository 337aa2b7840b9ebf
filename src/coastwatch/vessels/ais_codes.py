"""
AIS code tables: navigational status, ship type, and named coverage regions.
"""

from typing import Optional

NAVIGATIONAL_STATUS: dict[int, str] = {
    0: "Under way using engine",
    1: "At anchor",
    2: "Not under command",
    3: "Restricted manoeuvrability",
    4: "Constrained by her draught",
    5: "Moored",
    6: "Aground",
    7: "Engaged in fishing",
    8: "Under way sailing",
    9: "Reserved for future use",
    10: "Reserved for future use",
    11: "Power-driven vessel towing astern",
    12: "Power-driven vessel pushing ahead",
    13: "Reserved for future use",
    14: "AIS-SART",
    15: "Not defined",
}

VESSEL_TYPES: dict[int, str] = {
    0: "Not available",
    20: "Wing in ground",
    30: "Fishing",
    31: "Towing",
    32: "Towing (length exceeds 200m or breadth exceeds 25m)",
    33: "Dredging or underwater ops",
    34: "Diving ops",
    35: "Military ops",
    36: "Sailing",
    37: "Pleasure Craft",
    40: "High speed craft",
    50: "Pilot Vessel",
    51: "Search and Rescue vessel",
    52: "Tug",
    53: "Port Tender",
    54: "Anti-pollution equipment",
    55: "Law Enforcement",
    56: "Spare - Local Vessel",
    57: "Spare - Local Vessel",
    58: "Medical Transport",
    59: "Noncombatant ship",
    60: "Passenger",
    70: "Cargo",
    80: "Tanker",
    90: "Other Type",
}

# Decades whose x1..x4 codes carry a hazardous-cargo category letter A..D.
_HAZARDOUS_DECADES = {20, 40, 60, 70, 80, 90}

# Placeholder types assigned before real reference data arrives.
UNKNOWN_VESSEL_TYPES = ("", "Unknown", "Not available")

# AIS TrueHeading value meaning "not available".
HEADING_NOT_AVAILABLE = 511

# Named subscription regions: [[lat, lon], [lat, lon]] corner pairs.
REGIONS: dict[str, list[list[list[float]]]] = {
    "global": [[[-90.0, -180.0], [90.0, 180.0]]],
    "singapore": [[[1.0, 103.5], [1.5, 104.5]]],
    "north-atlantic": [[[30.0, -80.0], [60.0, 0.0]]],
    "mediterranean": [[[30.0, -6.0], [46.0, 37.0]]],
    "indian-ocean": [[[-40.0, 40.0], [30.0, 100.0]]],
    "pacific": [[[-60.0, 120.0], [60.0, -70.0]]],
}


def navigational_status_name(code: Optional[int]) -> str:
    if code is None:
        return "Unknown"
    return NAVIGATIONAL_STATUS.get(code, "Unknown")


def type_from_navigational_status(code: Optional[int]) -> str:
    """Best-effort vessel type for a vessel only seen in position reports."""
    if code == 7:
        return "Fishing"
    if code == 8:
        return "Sailing"
    return "Unknown"


def vessel_type_name(code: int) -> str:
    """
    Human-readable AIS ship type.

    Exact table entries win. Codes x1-x4 of the wing-in-ground, high speed,
    passenger, cargo, tanker and other decades carry a hazardous-cargo
    category letter (A-D). Anything else is reported as "Unknown ({code})".
    """
    if code in VESSEL_TYPES:
        return VESSEL_TYPES[code]
    decade, category = divmod(code, 10)
    base = decade * 10
    if base in _HAZARDOUS_DECADES and 1 <= category <= 4:
        return f"{VESSEL_TYPES[base]} (hazardous category {chr(64 + category)})"
    return f"Unknown ({code})"
