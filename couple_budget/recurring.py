"""Scheduling helpers for recurring expenses such as rent or subscriptions."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .frequency import Frequency, next_occurrence
from .models import RecurringExpense, Transaction

logger = logging.getLogger(__name__)

RECURRING_DESCRIPTION_SUFFIX = ' (recurring)'


class RecurringState(str, Enum):
    SCHEDULED = 'scheduled'
    DUE = 'due'
    INACTIVE = 'inactive'
    ENDED = 'ended'


def expense_state(expense: RecurringExpense, now: Optional[date] = None) -> RecurringState:
    now = now or date.today()
    if not expense.is_active:
        return RecurringState.INACTIVE
    if expense.has_ended(now):
        return RecurringState.ENDED
    if expense.is_due(now):
        return RecurringState.DUE
    return RecurringState.SCHEDULED


def recurring_description(description: str) -> str:
    return f"{description}{RECURRING_DESCRIPTION_SUFFIX}"


def is_recurring_description(description: str) -> bool:
    return description.endswith(RECURRING_DESCRIPTION_SUFFIX)


def process_expense(expense: RecurringExpense) -> Tuple[Transaction, RecurringExpense]:
    """Materialize the pending occurrence and advance the schedule by one step.

    The transaction is dated on the occurrence itself; the returned expense
    has ``next_due_date`` strictly after that occurrence.
    """
    occurrence = expense.next_due_date
    transaction = Transaction(
        date=occurrence,
        description=recurring_description(expense.description),
        category=expense.category,
        amount=expense.amount,
        payer=expense.payer,
    )
    advanced = replace(
        expense,
        next_due_date=next_occurrence(expense.frequency, occurrence),
        last_processed_date=occurrence,
    )
    return transaction, advanced


def materialize_due(
    expense: RecurringExpense,
    now: Optional[date] = None,
) -> Tuple[List[Transaction], RecurringExpense]:
    """Process every missed occurrence up to ``now``.

    Returns the emitted transactions (oldest first) and the expense with its
    next due date past ``now``. An expense that is not due comes back
    unchanged with no transactions. Occurrences after ``end_date`` are never
    emitted.
    """
    now = now or date.today()
    emitted: List[Transaction] = []
    current = expense
    while current.is_due(now):
        if current.end_date is not None and current.next_due_date > current.end_date:
            break
        transaction, current = process_expense(current)
        emitted.append(transaction)
    if emitted:
        logger.debug(
            "Materialized %d occurrence(s) of %r, next due %s",
            len(emitted), expense.description, current.next_due_date,
        )
    return emitted, current


def due_expenses(expenses: Iterable[RecurringExpense], now: Optional[date] = None) -> List[RecurringExpense]:
    now = now or date.today()
    return [expense for expense in expenses if expense.is_due(now)]


def auto_generation_candidates(
    expenses: Iterable[RecurringExpense],
    now: Optional[date] = None,
) -> List[RecurringExpense]:
    """Active, auto-generating expenses that are currently due."""
    now = now or date.today()
    return [
        expense for expense in expenses
        if expense.is_active and expense.auto_generate and expense.is_due(now)
    ]


def filter_by_frequency(
    expenses: Iterable[RecurringExpense],
    frequency: Optional[Frequency] = None,
) -> List[RecurringExpense]:
    if frequency is None:
        return list(expenses)
    return [expense for expense in expenses if expense.frequency == Frequency(frequency)]


def active_expenses(expenses: Iterable[RecurringExpense]) -> List[RecurringExpense]:
    return [expense for expense in expenses if expense.is_active]


def monthly_recurring_total(expenses: Iterable[RecurringExpense]) -> float:
    """Monthly-equivalent cost of all active recurring expenses."""
    return float(sum(expense.monthly_cost for expense in active_expenses(expenses)))


def upcoming(
    expenses: Iterable[RecurringExpense],
    now: Optional[date] = None,
    within_days: int = 30,
) -> List[RecurringExpense]:
    """Active expenses due within ``within_days``, soonest first."""
    now = now or date.today()
    selected = [
        expense for expense in active_expenses(expenses)
        if not expense.has_ended(now) and (expense.next_due_date - now).days <= within_days
    ]
    return sorted(selected, key=lambda expense: expense.next_due_date)
