"""Asset categories and how each one is booked."""

from enum import Enum


class AssetType(str, Enum):
    """Bookable asset categories."""

    ACTIVITY = "activity"
    EVENT = "event"
    RESTAURANT = "restaurant"
    VEHICLE = "vehicle"
    ACCOMMODATION = "accommodation"
    PACKAGE = "package"


class PricingMode(str, Enum):
    """Whether the price is known up front or quoted by the partner."""

    FIXED = "fixed"
    QUOTE = "quote"


# Booked over a start/end range; any overlap is a conflict
RANGE_ASSET_TYPES = frozenset({AssetType.VEHICLE, AssetType.ACCOMMODATION})

# Bundled multi-asset bookings are always reviewed by hand
MANUAL_APPROVAL_ASSET_TYPES = frozenset({AssetType.PACKAGE})


def is_range_asset(asset_type: str) -> bool:
    return AssetType(asset_type) in RANGE_ASSET_TYPES
