"""Deterministic pricing from asset rules."""

from reservations.domain.assets import PricingMode, is_range_asset
from reservations.domain.time_windows import RequestedWindow, billable_days


def quote_price(
    asset_type: str,
    pricing_mode: str,
    unit_price: int,
    requested: RequestedWindow,
) -> tuple[int, int | None]:
    """Return ``(estimated, final)`` in minor units.

    Range assets are charged per started day, slot assets per guest. The
    final price stays ``None`` for quote-priced assets until a partner
    confirms it.
    """
    if is_range_asset(asset_type):
        estimated = unit_price * billable_days(requested.window)
    else:
        estimated = unit_price * requested.quantity

    if PricingMode(pricing_mode) == PricingMode.QUOTE:
        return estimated, None
    return estimated, estimated
