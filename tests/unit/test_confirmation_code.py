"""
Unit tests for confirmation code and voucher number formats.
"""

from __future__ import annotations

import re
from datetime import date, datetime

import pytest

from reservations.utils.confirmation_code import (
    format_admin_code,
    format_traveler_code,
    generate_voucher_number,
    to_base36,
)


@pytest.mark.unit
def test_admin_code_uses_date_and_name() -> None:
    """Test the DDMM-SURNAME FIRSTNAME-NNNN format."""
    code = format_admin_code(date(2026, 3, 5), "Maria da Silva")

    assert re.fullmatch(r"0503-SILVA MARIA-\d{4}", code)
    assert 1000 <= int(code[-4:]) <= 9999


@pytest.mark.unit
def test_admin_code_with_single_or_missing_name() -> None:
    """Test the fallbacks for short or missing names."""
    assert format_admin_code(date(2026, 12, 31), "Pedro").startswith("3112-PEDRO PEDRO-")
    assert format_admin_code(date(2026, 1, 1), None).startswith("0101-CLIENTE CLIENTE-")


@pytest.mark.unit
def test_traveler_code_format() -> None:
    """Test the PREFIX-TIMESTAMP-RANDOM format."""
    code = format_traveler_code("RSV", now_ms=1_700_000_000_000)

    prefix, timestamp, suffix = code.split("-")
    assert prefix == "RSV"
    assert timestamp == to_base36(1_700_000_000_000)
    assert re.fullmatch(r"[0-9A-Z]{4}", suffix)


@pytest.mark.unit
def test_to_base36() -> None:
    """Test base36 encoding."""
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    with pytest.raises(ValueError):
        to_base36(-1)


@pytest.mark.unit
def test_voucher_number_format() -> None:
    """Test the VCH-YYYYMMDD-XXXX format."""
    number = generate_voucher_number(datetime(2026, 1, 15, 10, 0))

    assert re.fullmatch(r"VCH-20260115-[0-9A-Z]{4}", number)
