"""Confirmation code and voucher number generation utilities."""

import random
import secrets
import string
import time
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

_BASE36 = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def format_admin_code(booking_date: date, customer_name: str | None) -> str:
    """Build a staff-facing code like '0503-SILVA MARIA-4821'.

    Args:
        booking_date: Date the reservation is for
        customer_name: Full customer name; the last part is the surname

    Returns:
        str: Code in format DDMM-SURNAME FIRSTNAME-NNNN
    """
    name_parts = (customer_name or "").strip().upper().split()
    first_name = name_parts[0] if name_parts else "CLIENTE"
    surname = name_parts[-1] if len(name_parts) > 1 else first_name
    digits = random.randint(1000, 9999)
    return f"{booking_date:%d%m}-{surname} {first_name}-{digits}"


def format_traveler_code(prefix: str, now_ms: int | None = None) -> str:
    """Build a code like 'RSV-M2K9XQ1A-7F3Z' from the clock and a random suffix."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}-{to_base36(now_ms)}-{suffix}"


async def generate_confirmation_code(
    db: AsyncSession,
    *,
    admin_initiated: bool,
    booking_date: date,
    customer_name: str | None,
    prefix: str,
) -> str:
    """Generate a confirmation code not yet used by any reservation.

    Args:
        db: Database session for uniqueness check
        admin_initiated: Staff-created reservations get the DDMM-name format
        booking_date: Local date of the reservation
        customer_name: Customer full name (staff format only)
        prefix: Prefix for traveler-created codes

    Returns:
        str: Unique confirmation code
    """
    from reservations.models.reservation import Reservation

    while True:
        if admin_initiated:
            code = format_admin_code(booking_date, customer_name)
        else:
            code = format_traveler_code(prefix)

        result = await db.execute(
            select(Reservation.id).where(Reservation.confirmation_code == code)
        )
        if result.scalar_one_or_none() is None:
            return code


def generate_voucher_number(issued_at: datetime | None = None) -> str:
    """Generate a voucher number.

    Returns:
        str: Voucher number like 'VCH-20250115-A3B7'
    """
    date_part = (issued_at or datetime.now()).strftime("%Y%m%d")
    random_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"VCH-{date_part}-{random_part}"
