"""Mapping between domain entities and record-store field maps.

Field names are part of the stored format and must not change. Dates are
stored as ISO-8601 strings. Decoding is strict: a record with a missing or
mistyped field raises ``RecordDecodeError`` and ``decode_records`` skips it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .frequency import Frequency
from .models import (
    Budgets,
    GoalCategory,
    GoalPriority,
    Payer,
    RecurringExpense,
    Salaires,
    SavingsContribution,
    SavingsGoal,
    Transaction,
    TransactionCategory,
)

logger = logging.getLogger(__name__)

TRANSACTION = 'Transaction'
RECURRING_EXPENSE = 'RecurringExpense'
SAVINGS_GOAL = 'SavingsGoal'
SAVINGS_CONTRIBUTION = 'SavingsContribution'
BUDGETS = 'Budgets'
SALAIRES = 'Salaires'

SINGLETON_ID = 'singleton'

Fields = Dict[str, Any]


class RecordDecodeError(ValueError):
    """A stored record is missing a field or holds a value of the wrong type."""


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _require(fields: Mapping[str, Any], key: str) -> Any:
    if key not in fields or fields[key] is None:
        raise RecordDecodeError(f"missing field {key!r}")
    return fields[key]


def _str(fields: Mapping[str, Any], key: str) -> str:
    value = _require(fields, key)
    if not isinstance(value, str):
        raise RecordDecodeError(f"field {key!r} is not a string")
    return value


def _number(fields: Mapping[str, Any], key: str) -> float:
    value = _require(fields, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordDecodeError(f"field {key!r} is not a number")
    return float(value)


def _bool(fields: Mapping[str, Any], key: str) -> bool:
    value = _require(fields, key)
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise RecordDecodeError(f"field {key!r} is not a boolean")


def _date(fields: Mapping[str, Any], key: str) -> date:
    value = _require(fields, key)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise RecordDecodeError(f"field {key!r} is not an ISO date")


def _optional_date(fields: Mapping[str, Any], key: str) -> Optional[date]:
    if fields.get(key) is None:
        return None
    return _date(fields, key)


def _enum(fields: Mapping[str, Any], key: str, enum_cls):
    raw = _str(fields, key)
    try:
        return enum_cls(raw)
    except ValueError:
        raise RecordDecodeError(f"field {key!r} has unknown value {raw!r}") from None


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------


def encode_transaction(t: Transaction) -> Fields:
    return {
        'id': t.id,
        'date': _iso(t.date),
        'description': t.description,
        'category': TransactionCategory(t.category).value,
        'amount': t.amount,
        'payer': Payer(t.payer).value,
    }


def encode_recurring_expense(e: RecurringExpense) -> Fields:
    return {
        'id': e.id,
        'description': e.description,
        'amount': e.amount,
        'category': TransactionCategory(e.category).value,
        'payer': Payer(e.payer).value,
        'frequency': Frequency(e.frequency).value,
        'startDate': _iso(e.start_date),
        'nextDueDate': _iso(e.next_due_date),
        'isActive': e.is_active,
        'autoGenerate': e.auto_generate,
        'endDate': _iso(e.end_date),
        'lastProcessedDate': _iso(e.last_processed_date),
    }


def encode_savings_goal(g: SavingsGoal) -> Fields:
    return {
        'id': g.id,
        'name': g.name,
        'description': g.description,
        'targetAmount': g.target_amount,
        'currentAmount': g.current_amount,
        'startDate': _iso(g.start_date),
        'targetDate': _iso(g.target_date),
        'category': GoalCategory(g.category).value,
        'priority': GoalPriority(g.priority).value,
        'monthlyContribution': g.monthly_contribution,
        'isActive': g.is_active,
    }


def encode_contribution(c: SavingsContribution) -> Fields:
    return {
        'id': c.id,
        'goalId': c.goal_id,
        'amount': c.amount,
        'date': _iso(c.date),
        'note': c.note,
    }


def encode_budgets(budgets: Budgets, updated: Optional[datetime] = None) -> Fields:
    fields = dict(budgets.as_dict())
    fields['lastUpdated'] = (updated or datetime.now()).isoformat()
    return fields


def encode_salaires(salaires: Salaires, updated: Optional[datetime] = None) -> Fields:
    fields = dict(salaires.as_dict())
    fields['lastUpdated'] = (updated or datetime.now()).isoformat()
    return fields


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------


def decode_transaction(fields: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=_str(fields, 'id'),
        date=_date(fields, 'date'),
        description=_str(fields, 'description'),
        category=_enum(fields, 'category', TransactionCategory),
        amount=_number(fields, 'amount'),
        payer=_enum(fields, 'payer', Payer),
    )


def decode_recurring_expense(fields: Mapping[str, Any]) -> RecurringExpense:
    return RecurringExpense(
        id=_str(fields, 'id'),
        description=_str(fields, 'description'),
        amount=_number(fields, 'amount'),
        category=_enum(fields, 'category', TransactionCategory),
        payer=_enum(fields, 'payer', Payer),
        frequency=_enum(fields, 'frequency', Frequency),
        start_date=_date(fields, 'startDate'),
        next_due_date=_date(fields, 'nextDueDate'),
        is_active=_bool(fields, 'isActive'),
        auto_generate=_bool(fields, 'autoGenerate'),
        end_date=_optional_date(fields, 'endDate'),
        last_processed_date=_optional_date(fields, 'lastProcessedDate'),
    )


def decode_savings_goal(fields: Mapping[str, Any]) -> SavingsGoal:
    return SavingsGoal(
        id=_str(fields, 'id'),
        name=_str(fields, 'name'),
        description=fields.get('description') or '',
        target_amount=_number(fields, 'targetAmount'),
        current_amount=_number(fields, 'currentAmount'),
        start_date=_date(fields, 'startDate'),
        target_date=_date(fields, 'targetDate'),
        category=_enum(fields, 'category', GoalCategory),
        priority=_enum(fields, 'priority', GoalPriority),
        monthly_contribution=_number(fields, 'monthlyContribution'),
        is_active=_bool(fields, 'isActive'),
    )


def decode_contribution(fields: Mapping[str, Any]) -> SavingsContribution:
    note = fields.get('note')
    if note is not None and not isinstance(note, str):
        raise RecordDecodeError("field 'note' is not a string")
    return SavingsContribution(
        id=_str(fields, 'id'),
        goal_id=_str(fields, 'goalId'),
        amount=_number(fields, 'amount'),
        date=_date(fields, 'date'),
        note=note,
    )


def decode_budgets(fields: Mapping[str, Any]) -> Budgets:
    """Missing or mistyped categories fall back to their defaults."""
    budgets = Budgets()
    for category in TransactionCategory:
        try:
            budgets.set_for_category(category, _number(fields, category.value))
        except RecordDecodeError:
            continue
    return budgets


def decode_salaires(fields: Mapping[str, Any]) -> Salaires:
    salaires = Salaires()
    for person in ('pilou', 'doudou'):
        try:
            setattr(salaires, person, _number(fields, person))
        except RecordDecodeError:
            continue
    return salaires


ENCODERS: Dict[str, Callable[[Any], Fields]] = {
    TRANSACTION: encode_transaction,
    RECURRING_EXPENSE: encode_recurring_expense,
    SAVINGS_GOAL: encode_savings_goal,
    SAVINGS_CONTRIBUTION: encode_contribution,
}

DECODERS: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    TRANSACTION: decode_transaction,
    RECURRING_EXPENSE: decode_recurring_expense,
    SAVINGS_GOAL: decode_savings_goal,
    SAVINGS_CONTRIBUTION: decode_contribution,
}


def encode(record_type: str, entity: Any) -> Fields:
    return ENCODERS[record_type](entity)


def decode_records(record_type: str, records: List[Mapping[str, Any]]) -> Tuple[List[Any], int]:
    """Decode every valid record, skipping malformed ones.

    Returns (entities, skipped_count).
    """
    decoder = DECODERS[record_type]
    entities: List[Any] = []
    skipped = 0
    for fields in records:
        try:
            entities.append(decoder(fields))
        except RecordDecodeError as exc:
            skipped += 1
            logger.warning("Skipping invalid %s record %r: %s", record_type, fields.get('id'), exc)
    if skipped:
        logger.warning("Skipped %d malformed %s record(s)", skipped, record_type)
    return entities, skipped
