"""
Unit tests for the AIS code tables.
"""

from coastwatch.vessels.ais_codes import (
    REGIONS,
    navigational_status_name,
    type_from_navigational_status,
    vessel_type_name,
)


class TestVesselTypeName:
    def test_exact_entries(self) -> None:
        assert vessel_type_name(0) == "Not available"
        assert vessel_type_name(52) == "Tug"
        assert vessel_type_name(70) == "Cargo"

    def test_full_labels(self) -> None:
        assert vessel_type_name(32) == "Towing (length exceeds 200m or breadth exceeds 25m)"
        assert vessel_type_name(33) == "Dredging or underwater ops"
        assert vessel_type_name(51) == "Search and Rescue vessel"
        assert vessel_type_name(54) == "Anti-pollution equipment"
        assert vessel_type_name(59) == "Noncombatant ship"
        assert vessel_type_name(56) == "Spare - Local Vessel"
        assert vessel_type_name(57) == "Spare - Local Vessel"

    def test_hazardous_categories(self) -> None:
        assert vessel_type_name(21) == "Wing in ground (hazardous category A)"
        assert vessel_type_name(44) == "High speed craft (hazardous category D)"
        assert vessel_type_name(61) == "Passenger (hazardous category A)"
        assert vessel_type_name(71) == "Cargo (hazardous category A)"
        assert vessel_type_name(84) == "Tanker (hazardous category D)"
        assert vessel_type_name(94) == "Other Type (hazardous category D)"

    def test_codes_outside_table_are_unknown(self) -> None:
        assert vessel_type_name(75) == "Unknown (75)"
        assert vessel_type_name(69) == "Unknown (69)"
        assert vessel_type_name(89) == "Unknown (89)"
        assert vessel_type_name(99) == "Unknown (99)"
        assert vessel_type_name(25) == "Unknown (25)"
        assert vessel_type_name(12) == "Unknown (12)"


class TestNavigationalStatus:
    def test_names(self) -> None:
        assert navigational_status_name(0) == "Under way using engine"
        assert navigational_status_name(5) == "Moored"
        assert navigational_status_name(42) == "Unknown"
        assert navigational_status_name(None) == "Unknown"

    def test_type_hint_from_status(self) -> None:
        assert type_from_navigational_status(7) == "Fishing"
        assert type_from_navigational_status(8) == "Sailing"
        assert type_from_navigational_status(0) == "Unknown"


def test_regions_are_corner_pairs() -> None:
    for name, boxes in REGIONS.items():
        for box in boxes:
            assert len(box) == 2, name
            assert all(len(corner) == 2 for corner in box), name
