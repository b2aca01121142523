# -*- coding: utf-8 -*-
"""
Formatting utilities for alert messages.
Handles Taipei timezone conversion and number formatting.
"""
from datetime import datetime, timezone
from typing import Optional
import pytz

TAIPEI_TZ = pytz.timezone('Asia/Taipei')


def format_price(price: float) -> str:
    """
    Format price with two decimals: 650.00

    Args:
        price: Price value (e.g., 650)

    Returns:
        Formatted string (e.g., "650.00")
    """
    return f"{price:.2f}"


def format_signed(value: float) -> str:
    """Format a change with an explicit sign: +12.50 / -3.00"""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}"


def format_percentage(value: float, signed: bool = True) -> str:
    """
    Format percentage: +1.25% (signed) or 1.25% (unsigned)

    Args:
        value: Percentage value (e.g., 1.25 for 1.25%)
    """
    if signed:
        return f"{format_signed(value)}%"
    return f"{value:.2f}%"


def format_volume(volume: float) -> str:
    """Volume as a whole number: 12345"""
    return f"{volume:.0f}"


def get_taipei_time() -> datetime:
    return datetime.now(TAIPEI_TZ)


def format_datetime_tw(dt: Optional[datetime] = None) -> str:
    """
    Format datetime in Taipei time: 2025/11/11 13:30:00

    Args:
        dt: datetime object (if None, uses current time; naive values are UTC)
    """
    if dt is None:
        dt = get_taipei_time()
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc).astimezone(TAIPEI_TZ)
    else:
        dt = dt.astimezone(TAIPEI_TZ)

    return dt.strftime("%Y/%m/%d %H:%M:%S")


def format_quote_time(timestamp: Optional[int]) -> str:
    """
    Format a TWSE timestamp, which may be epoch milliseconds or seconds.

    Returns "N/A" when missing; unrecognised values are returned as-is.
    """
    if timestamp is None:
        return "N/A"

    if timestamp > 1_000_000_000_000:
        dt = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    elif timestamp > 1_000_000_000:
        dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    else:
        return str(timestamp)

    return format_datetime_tw(dt)
