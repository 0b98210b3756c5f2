"""Payment cadences: annualizing multipliers and next-occurrence rules."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Dict

from dateutil.relativedelta import relativedelta


class Frequency(str, Enum):
    WEEKLY = 'weekly'
    BIWEEKLY = 'biweekly'
    MONTHLY = 'monthly'
    QUARTERLY = 'quarterly'
    BIANNUAL = 'biannual'
    ANNUAL = 'annual'

    @property
    def annual_multiplier(self) -> int:
        return FREQUENCY_TABLE[self]['annual_multiplier']

    @property
    def step(self) -> relativedelta:
        return FREQUENCY_TABLE[self]['step']

    @property
    def label(self) -> str:
        return FREQUENCY_TABLE[self]['label']

    @property
    def short_label(self) -> str:
        return FREQUENCY_TABLE[self]['short_label']


# Fixed multipliers, not derived from calendar length.
FREQUENCY_TABLE: Dict[Frequency, Dict[str, object]] = {
    Frequency.WEEKLY: {
        'annual_multiplier': 52,
        'step': relativedelta(weeks=1),
        'label': 'Weekly',
        'short_label': 'wk',
    },
    Frequency.BIWEEKLY: {
        'annual_multiplier': 26,
        'step': relativedelta(weeks=2),
        'label': 'Biweekly',
        'short_label': '2 wk',
    },
    Frequency.MONTHLY: {
        'annual_multiplier': 12,
        'step': relativedelta(months=1),
        'label': 'Monthly',
        'short_label': 'mo',
    },
    Frequency.QUARTERLY: {
        'annual_multiplier': 4,
        'step': relativedelta(months=3),
        'label': 'Quarterly',
        'short_label': 'qtr',
    },
    Frequency.BIANNUAL: {
        'annual_multiplier': 2,
        'step': relativedelta(months=6),
        'label': 'Biannual',
        'short_label': '6 mo',
    },
    Frequency.ANNUAL: {
        'annual_multiplier': 1,
        'step': relativedelta(years=1),
        'label': 'Annual',
        'short_label': 'yr',
    },
}


def annual_multiplier(frequency: Frequency) -> int:
    return Frequency(frequency).annual_multiplier


def next_occurrence(frequency: Frequency, from_date: date) -> date:
    """Return the occurrence one cadence step after ``from_date``.

    Month and year steps clamp to the last valid day of the target month,
    so Jan 31 + 1 month is Feb 28 (or 29).
    """
    return from_date + Frequency(frequency).step


def annual_amount(amount: float, frequency: Frequency) -> float:
    return amount * annual_multiplier(frequency)


def monthly_equivalent(amount: float, frequency: Frequency) -> float:
    """Normalize a per-occurrence amount to its monthly cost."""
    return annual_amount(amount, frequency) / 12
