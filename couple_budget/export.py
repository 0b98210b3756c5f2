"""Bulk JSON export of the whole budget state."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .config import EXPORT_DIR
from .models import Budgets, RecurringExpense, Salaires, SavingsContribution, SavingsGoal, Transaction
from .records import (
    encode_contribution,
    encode_recurring_expense,
    encode_savings_goal,
    encode_transaction,
)

EXPORT_VERSION = 1


def build_export(
    salaires: Salaires,
    budgets: Budgets,
    transactions: Iterable[Transaction],
    recurring_expenses: Iterable[RecurringExpense] = (),
    savings_goals: Iterable[SavingsGoal] = (),
    contributions: Iterable[SavingsContribution] = (),
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    return {
        'version': EXPORT_VERSION,
        'exportDate': (exported_at or datetime.now()).isoformat(),
        'salaires': salaires.as_dict(),
        'budgets': budgets.as_dict(),
        'transactions': [encode_transaction(t) for t in transactions],
        'recurringExpenses': [encode_recurring_expense(e) for e in recurring_expenses],
        'savingsGoals': [encode_savings_goal(g) for g in savings_goals],
        'savingsContributions': [encode_contribution(c) for c in contributions],
    }


def export_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)


def write_export(payload: Dict[str, Any], path: Optional[Path] = None) -> Path:
    target = path or EXPORT_DIR / f"budget_export_{datetime.now():%Y%m%d_%H%M%S}.json"
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open('w', encoding='utf-8') as handle:
        handle.write(export_json(payload))
    return target
