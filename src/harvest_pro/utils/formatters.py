"""Formatting utilities for display values."""

from harvest_pro.utils.constants import CURRENCY


def format_currency(value: float) -> str:
    """Format a float as NZD currency."""
    return f"${value:,.2f} {CURRENCY}"


def format_hours(value: float) -> str:
    return f"{value:.1f} h"


def format_retry_count(retry_count: int, ceiling: int) -> str:
    """Show retries against the dead-letter ceiling, e.g. ``12/50``."""
    return f"{retry_count}/{ceiling}"
