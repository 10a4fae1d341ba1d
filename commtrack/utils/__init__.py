"""Utility functions."""

from commtrack.utils.audit import log_action
from commtrack.utils.money import format_money, round_currency

__all__ = [
    "format_money",
    "log_action",
    "round_currency",
]
