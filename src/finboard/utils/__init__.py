"""Utility functions for finboard."""

from finboard.utils.date_parser import parse_date
from finboard.utils.amount_parser import parse_amount, format_currency, to_money
from finboard.utils.ids import generate_id

__all__ = ["parse_date", "parse_amount", "format_currency", "to_money", "generate_id"]
